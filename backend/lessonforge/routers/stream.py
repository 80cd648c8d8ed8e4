from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketState

from ..db import get_db
from ..dependencies import get_llm_client
from ..exceptions import QuotaExceededError
from ..llm_client import AnthropicClient
from ..persistence import ContentStore
from ..quality import QualityAssessor
from ..settings import Settings, get_settings
from ..streaming import GenerationSession
from .auth import consume_request_quota, user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stream", tags=["stream"])

# Policy violation close code
WS_POLICY_VIOLATION = 1008
WS_INTERNAL_ERROR = 1011


async def _reject(websocket: WebSocket, message: str, code: int) -> None:
	await websocket.send_json({"type": "error", "message": message})
	await websocket.close(code=code)


@router.websocket("/content")
async def stream_content(
	websocket: WebSocket,
	token: str = Query(default=""),
	db: Session = Depends(get_db),
	config: Settings = Depends(get_settings),
	client: Optional[AnthropicClient] = Depends(get_llm_client),
):
	await websocket.accept()
	user = await run_in_threadpool(user_from_token, token, db) if token else None
	if user is None:
		await _reject(websocket, "Could not validate credentials", WS_POLICY_VIOLATION)
		return
	if client is None:
		await _reject(websocket, "ANTHROPIC_API_KEY is not configured", WS_INTERNAL_ERROR)
		return
	try:
		await run_in_threadpool(consume_request_quota, db, user.username)
	except QuotaExceededError as err:
		await _reject(websocket, err.message, WS_POLICY_VIOLATION)
		return

	session = GenerationSession(
		send=websocket.send_json,
		store=ContentStore(db, user.username, config),
		llm=client,
		assessor=QualityAssessor(client, config),
		config=config,
	)
	logger.info("Streaming session opened for %s", user.username)
	try:
		await session.run(websocket.receive_json)
	except WebSocketDisconnect:
		logger.info("Client disconnected from streaming session (state=%s)", session.state.value)
	finally:
		await session.shutdown()
	if websocket.client_state == WebSocketState.CONNECTED:
		await websocket.close()
