from __future__ import annotations
from typing import Dict
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./lessonforge.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added after the first release: table -> {column: DDL fragment}
ADDED_COLUMNS: Dict[str, Dict[str, str]] = {
	"auth_users": {
		"email": "VARCHAR(256)",
		"requests_used": "INTEGER DEFAULT 0 NOT NULL",
		"requests_limit": "INTEGER DEFAULT 1000 NOT NULL",
	},
	"projects": {
		"completion_percentage": "INTEGER DEFAULT 0 NOT NULL",
	},
	"content_items": {
		"metadata": "JSON",
	},
}


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema(bind: Engine = engine) -> int:
	"""Add any missing ADDED_COLUMNS to existing tables; returns how many were added."""
	try:
		inspector = inspect(bind)
		tables = set(inspector.get_table_names())
	except Exception:
		return 0
	added = 0
	for table, columns in ADDED_COLUMNS.items():
		if table not in tables:
			continue
		present = {c["name"] for c in inspector.get_columns(table)}
		missing = [(name, ddl) for name, ddl in columns.items() if name not in present]
		if not missing:
			continue
		with bind.begin() as conn:
			for name, ddl in missing:
				conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
				added += 1
	return added
