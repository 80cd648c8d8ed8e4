from fastapi import FastAPI
import asyncio
import logging

from .db import Base, engine, SessionLocal, ensure_schema
from .cleanup import purge_stale_sessions
from .settings import settings
from .routers import auth, content, health, projects, prompts, stream

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LessonForge API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(projects.router)
app.include_router(prompts.router)
app.include_router(content.router)
app.include_router(stream.router)


def _purge_once() -> None:
	db = SessionLocal()
	try:
		removed = purge_stale_sessions(db)
		if removed:
			logger.info("Purged %s stale auth sessions", removed)
	except Exception:
		db.rollback()
		logger.exception("Session cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Daily, after the run at startup
	while True:
		await asyncio.sleep(24 * 60 * 60)
		_purge_once()


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("Schema migration failed")
	db = SessionLocal()
	try:
		auth.ensure_seed_user(db)
	finally:
		db.close()
	_purge_once()
	# Start periodic cleanup loop
	asyncio.create_task(_cleanup_watcher())
