from __future__ import annotations
from typing import List, Optional


class AppError(Exception):
	"""Base exception for application errors."""
	def __init__(self, message: str, original_error: Optional[Exception] = None):
		super().__init__(message)
		self.message = message
		self.original_error = original_error


class MissingEntityError(AppError):
	"""Raised when a required row (prompt, section, outline, project) is not found."""
	pass


class LLMError(AppError):
	"""Raised when the generation endpoint fails."""
	pass


class RetryableLLMError(LLMError):
	"""Transient upstream failure: network, timeout, 429, 5xx, malformed or empty payload."""
	pass


class TerminalLLMError(LLMError):
	"""Upstream rejected the request itself; retrying will not help."""
	def __init__(self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None):
		super().__init__(message, original_error)
		self.status_code = status_code


class LLMRetryExhaustedError(LLMError):
	def __init__(self, attempts: int, last_error: Optional[Exception]):
		super().__init__(
			f"Failed to generate content after {attempts} attempts: {last_error or 'Unknown error'}",
			last_error,
		)
		self.attempts = attempts
		self.last_error = last_error


class PersistenceError(AppError):
	"""Raised when a database write fails."""
	pass


class StageBlockedError(AppError):
	def __init__(self, stage: str, issues: List[str]):
		super().__init__(f"Stage '{stage}' is not complete: {'; '.join(issues)}")
		self.stage = stage
		self.issues = issues


class QuotaExceededError(AppError):
	pass
