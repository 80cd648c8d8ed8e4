from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession


def purge_stale_sessions(db: Session, max_idle: timedelta = timedelta(days=7)) -> int:
	# Sessions idle for longer than max_idle can no longer authenticate anyone
	threshold = datetime.utcnow() - max_idle
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	return res.rowcount or 0
