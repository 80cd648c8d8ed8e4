from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..exceptions import QuotaExceededError
from ..models import AuthUser, AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])

logging.getLogger('passlib').setLevel(logging.ERROR)
logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

# bcrypt ignores everything past this many bytes
BCRYPT_MAX_BYTES = 72


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"
	expires_in: int


class User(BaseModel):
	username: str


class Account(BaseModel):
	username: str
	email: Optional[str] = None
	requests_used: int
	requests_limit: int


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: str


def _truncated(password: str) -> str:
	return password.encode("utf-8")[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
	return pwd_context.hash(_truncated(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_truncated(plain_password), hashed_password)


def ensure_seed_user(db: Session) -> None:
	"""Create the configured educator account on first start."""
	if not settings.seed_username or not settings.seed_password_plain:
		return
	if db.get(AuthUser, settings.seed_username) is not None:
		return
	db.add(AuthUser(
		username=settings.seed_username,
		password_hash=hash_password(settings.seed_password_plain),
		requests_limit=settings.default_requests_limit,
	))
	db.commit()
	logger.info("Seeded user %s", settings.seed_username)


def _token_lifetime() -> timedelta:
	minutes = settings.access_token_expire_minutes
	return timedelta(minutes=minutes if minutes > 0 else 30 * 24 * 60)


def issue_token(db: Session, username: str) -> str:
	"""Sign a token whose jti names a server-side AuthSession row."""
	session_id = uuid.uuid4().hex
	claims = {
		"sub": username,
		"jti": session_id,
		"exp": datetime.now(timezone.utc) + _token_lifetime(),
	}
	db.add(AuthSession(session_id=session_id, username=username))
	try:
		db.commit()
	except Exception:
		db.rollback()
		raise
	return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _token_response(db: Session, username: str) -> Token:
	return Token(access_token=issue_token(db, username), expires_in=int(_token_lifetime().total_seconds()))


def user_from_token(token: str, db: Session) -> Optional[User]:
	"""Resolve a bearer token to its user, or None when it is invalid or revoked."""
	try:
		claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		return None
	username = claims.get("sub")
	row = db.get(AuthSession, claims.get("jti") or "")
	if not username or row is None or row.username != username:
		return None
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return User(username=username)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		user = user_from_token(token, db)
	except Exception:
		# On DB errors, fail closed
		db.rollback()
		raise credentials_exception
	if user is None:
		raise credentials_exception
	return user


def consume_request_quota(db: Session, username: str) -> None:
	"""Count one LLM-backed request against the user's limit."""
	row = db.get(AuthUser, username)
	if row is None:
		return
	if row.requests_used >= row.requests_limit:
		raise QuotaExceededError(f"request limit of {row.requests_limit} reached")
	row.requests_used += 1
	db.commit()


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	row = db.get(AuthUser, form_data.username)
	if row is None or not verify_password(form_data.password, row.password_hash):
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return _token_response(db, row.username)


@router.post("/register", response_model=Token, status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = req.username.strip()
	email = req.email.strip()
	if not username or not req.password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if "@" not in email:
		raise HTTPException(status_code=400, detail="a valid email is required")
	if not 3 <= len(username) <= 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if db.get(AuthUser, username) is not None:
		raise HTTPException(status_code=409, detail="username already exists")
	db.add(AuthUser(
		username=username,
		password_hash=hash_password(req.password),
		email=email,
		requests_limit=settings.default_requests_limit,
	))
	db.commit()
	logger.info("Registered user %s", username)
	return _token_response(db, username)


@router.get("/me", response_model=Account)
async def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(AuthUser, user.username)
	if row is None:
		raise HTTPException(status_code=404, detail="Account not found")
	return Account(username=row.username, email=row.email, requests_used=row.requests_used, requests_limit=row.requests_limit)


@router.post("/logout", status_code=204)
async def logout(token: str = Depends(oauth2_scheme), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	row = db.get(AuthSession, claims.get("jti"))
	if row is not None:
		db.delete(row)
		db.commit()
