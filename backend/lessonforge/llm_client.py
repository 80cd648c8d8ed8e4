from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import httpx

from .exceptions import LLMRetryExhaustedError, RetryableLLMError, TerminalLLMError
from .schemas import GenerationParameters
from .settings import Settings

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class AnthropicClient:
	"""Client for the Anthropic Messages API.

	`generate` makes one call, `generate_with_retry` wraps it in bounded
	exponential backoff, `stream` yields text deltas from the SSE variant.
	Failures are tagged retryable or terminal; only retryable ones are retried.
	"""

	def __init__(
		self,
		config: Settings,
		*,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		self.api_key = config.anthropic_api_key
		if not self.api_key:
			raise ValueError("ANTHROPIC_API_KEY is not configured")
		self.base_url = config.anthropic_base_url.rstrip("/")
		self.url = f"{self.base_url}/v1/messages"
		self.max_retries = max(1, config.llm_max_retries)
		self.retry_base_delay = config.llm_retry_base_delay
		self._headers = {
			"Content-Type": "application/json",
			"x-api-key": self.api_key,
			"anthropic-version": config.anthropic_version,
		}
		self._sleep = sleep
		self._client = httpx.AsyncClient(timeout=config.llm_timeout_seconds, transport=transport)

	async def aclose(self) -> None:
		await self._client.aclose()

	def _payload(self, prompt: str, params: GenerationParameters, *, stream: bool = False) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"model": params.model,
			"max_tokens": params.max_tokens,
			"temperature": params.temperature,
			"messages": [{"role": "user", "content": prompt}],
		}
		if stream:
			payload["stream"] = True
		return payload

	@staticmethod
	def _status_error(status_code: int, body: str) -> Exception:
		message = f"Claude API error: {status_code} {body[:500]}"
		if status_code == 429 or status_code >= 500:
			return RetryableLLMError(message)
		return TerminalLLMError(message, status_code=status_code)

	async def generate(self, prompt: str, params: GenerationParameters) -> str:
		try:
			r = await self._client.post(self.url, headers=self._headers, json=self._payload(prompt, params))
		except httpx.RequestError as net_err:
			raise RetryableLLMError(f"Error calling Claude API: {net_err}", net_err) from net_err
		if r.status_code >= 400:
			raise self._status_error(r.status_code, r.text)
		try:
			data = r.json()
			text = data["content"][0]["text"]
		except Exception as err:
			raise RetryableLLMError(f"Unexpected Claude response: {r.text[:500]}", err) from err
		if not text or not str(text).strip():
			raise RetryableLLMError("Empty content returned from Claude API")
		return text

	async def generate_with_retry(self, prompt: str, params: GenerationParameters) -> str:
		last_error: Optional[Exception] = None
		for attempt in range(1, self.max_retries + 1):
			try:
				logger.debug("API attempt %s of %s", attempt, self.max_retries)
				return await self.generate(prompt, params)
			except TerminalLLMError:
				raise
			except RetryableLLMError as err:
				last_error = err
				logger.warning("Attempt %s failed: %s", attempt, err)
				if attempt >= self.max_retries:
					break
				backoff = self.retry_base_delay * (2 ** attempt)
				logger.info("Retrying in %.1fs...", backoff)
				await self._sleep(backoff)
		raise LLMRetryExhaustedError(self.max_retries, last_error)

	async def stream(self, prompt: str, params: GenerationParameters) -> AsyncIterator[str]:
		"""Yield text deltas until the stream ends. Not retried."""
		payload = self._payload(prompt, params, stream=True)
		try:
			async with self._client.stream("POST", self.url, headers=self._headers, json=payload) as r:
				if r.status_code >= 400:
					body = (await r.aread()).decode("utf-8", errors="replace")
					raise self._status_error(r.status_code, body)
				async for line in r.aiter_lines():
					text, done = parse_sse_line(line)
					if done:
						return
					if text:
						yield text
		except httpx.RequestError as net_err:
			raise RetryableLLMError(f"Error calling Claude API: {net_err}", net_err) from net_err


def parse_sse_line(line: str) -> tuple[Optional[str], bool]:
	"""Decode one SSE line into (text delta or None, end-of-stream flag).

	Only `data:` lines carry payloads; `event:` lines, comments and blanks are
	skipped. A frame that is not valid JSON is a malformed stream.
	"""
	line = line.strip()
	if not line.startswith("data:"):
		return None, False
	data = line[len("data:"):].strip()
	if not data:
		return None, False
	if data == DONE_SENTINEL:
		return None, True
	try:
		event = json.loads(data)
	except json.JSONDecodeError as err:
		raise RetryableLLMError(f"Malformed stream frame: {data[:200]}", err) from err
	if not isinstance(event, dict):
		raise RetryableLLMError(f"Malformed stream frame: {data[:200]}")
	if event.get("type") == "message_stop":
		return None, True
	if event.get("type") == "error":
		detail = event.get("error") or "unknown error"
		if isinstance(detail, dict):
			detail = detail.get("message") or detail
		raise RetryableLLMError(f"Claude stream error: {detail}")
	delta = event.get("delta")
	if isinstance(delta, dict) and isinstance(delta.get("text"), str):
		return delta["text"], False
	return None, False
