"""FastAPI dependencies shared by the routers."""

from __future__ import annotations
from typing import AsyncIterator, Optional

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .exceptions import (
	AppError,
	LLMError,
	MissingEntityError,
	QuotaExceededError,
	StageBlockedError,
)
from .llm_client import AnthropicClient
from .persistence import ContentStore
from .routers.auth import User, consume_request_quota, get_current_user
from .settings import Settings, get_settings


def get_store(
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	config: Settings = Depends(get_settings),
) -> ContentStore:
	return ContentStore(db, user.username, config)


async def get_llm_client(config: Settings = Depends(get_settings)) -> AsyncIterator[Optional[AnthropicClient]]:
	"""Yields None when no API key is configured so routes can answer 503."""
	if not config.anthropic_api_key:
		yield None
		return
	client = AnthropicClient(config)
	try:
		yield client
	finally:
		await client.aclose()


def require_llm(client: Optional[AnthropicClient]) -> AnthropicClient:
	if client is None:
		raise HTTPException(status_code=503, detail="ANTHROPIC_API_KEY is not configured")
	return client


def charge_request(store: ContentStore) -> None:
	try:
		consume_request_quota(store.db, store.username)
	except QuotaExceededError as err:
		raise HTTPException(status_code=429, detail=err.message)


def http_error(err: AppError) -> HTTPException:
	if isinstance(err, MissingEntityError):
		return HTTPException(status_code=404, detail=err.message)
	if isinstance(err, StageBlockedError):
		return HTTPException(status_code=409, detail=err.message)
	if isinstance(err, QuotaExceededError):
		return HTTPException(status_code=429, detail=err.message)
	if isinstance(err, LLMError):
		return HTTPException(status_code=502, detail=err.message)
	# PersistenceError and anything unexpected
	return HTTPException(status_code=500, detail=err.message)
