"""
Streaming Session Controller
============================

Drives one content-generation session over a persistent bidirectional
connection. The controller is transport-agnostic: it receives decoded JSON
messages through ``receive`` and emits JSON events through ``send``, so the
WebSocket router and the tests plug in the same way.

State machine::

	idle -> awaiting_prompt -> streaming -> finalizing -> completed
	                       \\-> failed      \\-> cancelled   \\-> failed

Within a session everything runs cooperatively on the event loop: chunk
relay happens in the generation task, quality checks run as separate tasks,
and a plain boolean keeps at most one quality check in flight.

Outbound events:
- progress: {type, progress, message}
- content:  {type, progress, message, content, final?, contentId?}
- quality:  {type, indicators}
- error:    {type, message}
- info:     {type, message}
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi.concurrency import run_in_threadpool

from .exceptions import AppError, RetryableLLMError
from .llm_client import AnthropicClient
from .persistence import ContentStore, utc_now_iso
from .prompt_synthesizer import DEFAULT_MAX_TOKENS, build_enriched_prompt, resolve_style, style_temperature
from .quality import QualityAssessor
from .schemas import EducationalDNA, GenerationParameters
from .settings import Settings

logger = logging.getLogger(__name__)

SendFn = Callable[[Dict[str, Any]], Awaitable[None]]
ReceiveFn = Callable[[], Awaitable[Any]]

STREAM_PROGRESS_START = 20
STREAM_PROGRESS_CAP = 95
# Rough size of one token, used to turn the token budget into an expected length
CHARS_PER_TOKEN = 4


class SessionState(str, Enum):
	IDLE = "idle"
	AWAITING_PROMPT = "awaiting_prompt"
	STREAMING = "streaming"
	FINALIZING = "finalizing"
	COMPLETED = "completed"
	FAILED = "failed"
	CANCELLED = "cancelled"


TERMINAL_STATES = {SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}
ACTIVE_STATES = {SessionState.AWAITING_PROMPT, SessionState.STREAMING}


@dataclass
class GenerationRequest:
	prompt_id: str
	model: Optional[str] = None
	style: Optional[str] = None


def estimate_progress(chars: int, max_tokens: int) -> int:
	expected = max(1, max_tokens * CHARS_PER_TOKEN)
	span = STREAM_PROGRESS_CAP - STREAM_PROGRESS_START
	return min(STREAM_PROGRESS_CAP, STREAM_PROGRESS_START + int(span * chars / expected))


class GenerationSession:
	def __init__(
		self,
		*,
		send: SendFn,
		store: ContentStore,
		llm: AnthropicClient,
		assessor: QualityAssessor,
		config: Settings,
	) -> None:
		self.send = send
		self.store = store
		self.llm = llm
		self.assessor = assessor
		self.config = config
		self.state = SessionState.IDLE
		self.content_id: Optional[str] = None
		self.final_prompt: Optional[str] = None
		self._text = ""
		self._updates = 0
		self._progress = 0
		self._cancelled = False
		self._quality_in_flight = False
		self._generation: Optional[asyncio.Task] = None
		self._quality_task: Optional[asyncio.Task] = None
		self._save: Optional[asyncio.Future] = None

	# ------------------------------------------------------------------
	# Event relay
	# ------------------------------------------------------------------

	async def _emit(self, event: Dict[str, Any]) -> None:
		if self._cancelled:
			return
		await self.send(event)

	async def _emit_progress(self, progress: int, message: str) -> None:
		self._progress = max(self._progress, progress)
		await self._emit({"type": "progress", "progress": self._progress, "message": message})

	async def _fail(self, message: str) -> None:
		logger.warning("Generation session failed: %s", message)
		self.state = SessionState.FAILED
		await self._emit({"type": "error", "message": message})

	# ------------------------------------------------------------------
	# Connection loop
	# ------------------------------------------------------------------

	async def run(self, receive: ReceiveFn) -> None:
		"""Process client messages until the session reaches a terminal state.

		Receiving stays active while a generation runs so a cancel message can
		be handled mid-stream. Without a running generation the wait for the
		next message is bounded by the idle timeout.
		"""
		receiver: Optional[asyncio.Future] = None
		try:
			while self.state not in TERMINAL_STATES:
				if receiver is None:
					receiver = asyncio.ensure_future(receive())
				waiters = {receiver}
				timeout: Optional[float] = self.config.session_idle_timeout_seconds
				if self._generation is not None and not self._generation.done():
					waiters.add(self._generation)
					timeout = None
				done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
				if not done:
					await self._fail("Session idle timeout")
					break
				if receiver in done:
					finished, receiver = receiver, None
					try:
						message = finished.result()
					except ValueError as err:
						await self._emit({"type": "error", "message": f"Error processing message: {err}"})
						continue
					await self.handle_message(message)
		finally:
			if receiver is not None:
				receiver.cancel()
			await self.shutdown()

	async def handle_message(self, message: Any) -> None:
		if not isinstance(message, dict):
			await self._emit({"type": "error", "message": "Error processing message: expected a JSON object"})
			return
		if message.get("type") == "cancel":
			await self.cancel()
			return
		prompt_id = message.get("promptId")
		if not prompt_id:
			await self._emit({"type": "error", "message": "promptId is required"})
			return
		if self.state != SessionState.IDLE:
			await self._emit({"type": "error", "message": "Generation already in progress"})
			return
		request = GenerationRequest(
			prompt_id=str(prompt_id),
			model=message.get("model") or None,
			style=message.get("style") or message.get("generationStyle"),
		)
		self.state = SessionState.AWAITING_PROMPT
		self._generation = asyncio.create_task(self._generate(request))

	async def cancel(self) -> None:
		if self.state not in ACTIVE_STATES:
			await self._emit({"type": "info", "message": "No generation in progress"})
			return
		await self._emit({"type": "info", "message": "Generation cancelled by user"})
		self._cancelled = True
		self.state = SessionState.CANCELLED
		logger.info("Generation cancelled for content %s", self.content_id)
		# Cancelling the task closes the upstream HTTP stream as well
		await self.shutdown()

	async def shutdown(self) -> None:
		pending = [t for t in (self._generation, self._quality_task) if t is not None and not t.done()]
		for task in pending:
			task.cancel()
		if pending:
			await asyncio.gather(*pending, return_exceptions=True)
		# The final write outlives the connection
		if self._save is not None and not self._save.done():
			try:
				await self._save
			except AppError as err:
				logger.error("Failed to save generated content %s: %s", self.content_id, err.message)

	# ------------------------------------------------------------------
	# Generation
	# ------------------------------------------------------------------

	async def _generate(self, request: GenerationRequest) -> None:
		try:
			await self._emit_progress(5, "Starting generation...")
			await self._emit_progress(10, "Fetching prompt data...")
			chain = await run_in_threadpool(self.store.load_prompt_chain, request.prompt_id)

			await self._emit_progress(15, "Retrieving educational DNA...")
			dna = EducationalDNA.from_blob(chain.project.config_dna)
			style = resolve_style(request.style)
			stored = chain.prompt.parameters or {}
			params = GenerationParameters(
				model=request.model or stored.get("model") or self.config.default_model,
				max_tokens=int(stored.get("max_tokens") or DEFAULT_MAX_TOKENS),
				temperature=style_temperature(style),
			)
			self.final_prompt = build_enriched_prompt(chain.prompt.prompt_text, dna, style)
			metadata = {
				"model": params.model,
				"style": style,
				"temperature": params.temperature,
				"generated_at": utc_now_iso(),
			}
			content = await run_in_threadpool(self.store.begin_content, chain.prompt.id, metadata)
			self.content_id = content.id

			self.state = SessionState.STREAMING
			await self._emit_progress(STREAM_PROGRESS_START, f"Starting generation with {params.model}...")
			async for chunk in self.llm.stream(self.final_prompt, params):
				self._text += chunk
				self._updates += 1
				self._progress = max(self._progress, estimate_progress(len(self._text), params.max_tokens))
				await self._emit({
					"type": "content",
					"progress": self._progress,
					"message": "Generating content...",
					"content": self._text,
				})
				self._maybe_assess()
			if not self._text.strip():
				raise RetryableLLMError("Empty content returned from Claude API")
		except AppError as err:
			await self._fail(err.message)
			return
		except Exception as err:
			logger.exception("Unexpected error during generation")
			await self._fail(f"Error during generation: {err}")
			return

		# Past this point a cancel has nothing left to stop
		self.state = SessionState.FINALIZING
		final_text = self._text
		self._save = asyncio.ensure_future(run_in_threadpool(self.store.upsert_content, chain.prompt.id, final_text))
		# The client gets the full text before the outcome of the write
		await self._emit({
			"type": "content",
			"progress": 100,
			"message": "Content generation complete!",
			"content": final_text,
			"final": True,
			"contentId": self.content_id,
		})
		try:
			await asyncio.shield(self._save)
		except AppError as err:
			await self._fail(f"Failed to save generated content: {err.message}")
			return

		await self._final_quality(final_text)
		self.state = SessionState.COMPLETED

	# ------------------------------------------------------------------
	# Quality checks
	# ------------------------------------------------------------------

	def _maybe_assess(self) -> None:
		interval = self.config.quality_check_interval
		if interval <= 0 or self._updates % interval != 0 or self._quality_in_flight:
			return
		self._quality_in_flight = True
		snapshot = self._text[: self.config.quality_prefix_chars]
		self._quality_task = asyncio.create_task(self._run_quality(snapshot))

	async def _run_quality(self, text: str) -> None:
		try:
			indicators = await self.assessor.assess(text)
			if indicators is not None:
				await self._emit({"type": "quality", "indicators": indicators.model_dump()})
		except Exception as err:
			logger.warning("Quality check failed: %s", err)
		finally:
			self._quality_in_flight = False

	async def _final_quality(self, text: str) -> None:
		if not self.config.final_quality_check:
			return
		if self._quality_task is not None and not self._quality_task.done():
			await self._quality_task
		indicators = await self.assessor.assess(text[: self.config.final_quality_chars])
		if indicators is None:
			return
		try:
			await run_in_threadpool(
				self.store.merge_content_metadata, self.content_id, {"quality_metrics": indicators.model_dump()}
			)
		except AppError as err:
			logger.warning("Could not store quality metrics: %s", err.message)
		await self._emit({"type": "quality", "indicators": indicators.model_dump()})
