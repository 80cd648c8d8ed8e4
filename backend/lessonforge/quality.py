"""
Quality assessment of generated educational content.

A secondary, cheaper model call scores a (possibly partial) text buffer on
five indicators. The assessor is best-effort: any failure is logged and
reported as ``None`` so the primary content stream is never interrupted.
"""

from __future__ import annotations
import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from .llm_client import AnthropicClient
from .schemas import GenerationParameters, QualityIndicators
from .settings import Settings

logger = logging.getLogger(__name__)

QUALITY_TEMPERATURE = 0.2
QUALITY_MAX_TOKENS = 1000

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json(text: str) -> Any:
	"""Parse JSON from a model reply.

	A fenced code block wins when present; otherwise the whole reply is
	parsed. Raises ValueError when neither yields JSON.
	"""
	text = (text or "").strip()
	match = _FENCED_RE.search(text)
	if match:
		try:
			return json.loads(match.group(1))
		except json.JSONDecodeError:
			pass
	try:
		return json.loads(text)
	except json.JSONDecodeError as err:
		raise ValueError("Failed to parse JSON from model output") from err


def build_quality_prompt(text: str) -> str:
	return (
		"You are an educational content quality assessor. Analyze the following educational content "
		"(it may be an unfinished draft) and provide quality metrics.\n\n"
		f"{text}\n\n"
		"Provide a JSON response with these quality metrics (scores from 0-10):\n"
		"1. standards_alignment: How well the content aligns with typical educational standards\n"
		"2. reading_level: An object with score (0-10) and level (e.g. \"Grade 7\")\n"
		"3. pedagogical_alignment: How well it supports effective teaching and learning\n"
		"4. accessibility: How accessible the content is for diverse learners\n"
		"5. cultural_sensitivity: How culturally inclusive and sensitive the content is\n\n"
		"Return ONLY valid JSON with exactly these keys and no explanatory text."
	)


def parse_quality_response(raw: str) -> Optional[QualityIndicators]:
	try:
		data = extract_json(raw)
		return QualityIndicators.model_validate(data)
	except (ValueError, ValidationError) as err:
		logger.warning("Error parsing quality metrics: %s", err)
		return None


class QualityAssessor:
	def __init__(self, client: AnthropicClient, config: Settings) -> None:
		self.client = client
		self.params = GenerationParameters(
			model=config.quality_model,
			max_tokens=QUALITY_MAX_TOKENS,
			temperature=QUALITY_TEMPERATURE,
		)

	async def assess(self, text: str) -> Optional[QualityIndicators]:
		if not (text or "").strip():
			return None
		try:
			raw = await self.client.generate(build_quality_prompt(text), self.params)
		except Exception as err:
			logger.warning("Error generating quality metrics: %s", err)
			return None
		return parse_quality_response(raw)
