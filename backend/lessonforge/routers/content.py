from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..dependencies import charge_request, get_llm_client, get_store, http_error, require_llm
from ..exceptions import AppError, MissingEntityError
from ..llm_client import AnthropicClient
from ..models import ContentItem, Validation
from ..persistence import ContentStore, utc_now_iso
from ..prompt_synthesizer import DEFAULT_MAX_TOKENS
from ..schemas import EducationalDNA, GenerationParameters, SectionInput
from ..settings import settings
from ..validation import build_validation_prompt, parse_validation_response, validation_parameters

logger = logging.getLogger(__name__)

router = APIRouter(tags=["content"])


class GenerateRequest(BaseModel):
	prompt_id: Optional[str] = None
	model: Optional[str] = None
	# Ad-hoc form: generate from raw text, nothing is stored
	prompt: Optional[str] = None
	parameters: Dict[str, Any] = Field(default_factory=dict)


class ContentUpdate(BaseModel):
	content_text: str


class ApprovalRequest(BaseModel):
	approved: bool = True


def content_out(row: ContentItem) -> Dict[str, Any]:
	return {
		"id": row.id,
		"prompt_id": row.prompt_id,
		"content_text": row.content_text,
		"metadata": row.metadata_ or {},
		"is_approved": row.is_approved,
	}


def validation_out(row: Validation) -> Dict[str, Any]:
	data = row.validation_data or {}
	return {
		"id": row.id,
		"content_id": row.content_id,
		"quality_score": row.quality_score,
		"standards_alignment_score": row.standards_alignment_score,
		"improvement_suggestions": row.improvement_suggestions,
		"strengths": data.get("strengths", []),
		"weaknesses": data.get("weaknesses", []),
		"is_approved": row.is_approved,
	}


@router.post("/content/generate")
async def generate_content(
	req: GenerateRequest,
	store: ContentStore = Depends(get_store),
	client: Optional[AnthropicClient] = Depends(get_llm_client),
):
	"""Non-streaming generation with bounded retries.

	With `prompt_id` the stored prompt is sent as is and the result is saved.
	With a raw `prompt` the text is only returned.
	"""
	llm = require_llm(client)
	if not req.prompt_id:
		return await _generate_adhoc(req, store, llm)
	try:
		chain = store.load_prompt_chain(req.prompt_id)
		charge_request(store)
		params = _parameters(chain.prompt.parameters or {}, req.model)
		text = await llm.generate_with_retry(chain.prompt.prompt_text, params)
		metadata = {
			"model": params.model,
			"temperature": params.temperature,
			"generated_at": utc_now_iso(),
		}
		row = store.upsert_content(chain.prompt.id, text, metadata=metadata, approved=False)
	except AppError as err:
		logger.error("Content generation failed for prompt %s: %s", req.prompt_id, err.message)
		raise http_error(err)
	return content_out(row)


def _parameters(stored: Dict[str, Any], model: Optional[str]) -> GenerationParameters:
	return GenerationParameters(
		model=model or stored.get("model") or settings.default_model,
		max_tokens=int(stored.get("max_tokens") or DEFAULT_MAX_TOKENS),
		temperature=float(stored.get("temperature", 0.7)),
	)


async def _generate_adhoc(req: GenerateRequest, store: ContentStore, llm: AnthropicClient) -> Dict[str, Any]:
	if not req.prompt or not req.prompt.strip():
		raise HTTPException(status_code=400, detail="prompt_id or prompt is required")
	charge_request(store)
	params = _parameters(req.parameters, req.model)
	try:
		text = await llm.generate_with_retry(req.prompt, params)
	except AppError as err:
		logger.error("Ad-hoc generation failed: %s", err.message)
		raise http_error(err)
	return {
		"content_text": text,
		"metadata": {"model": params.model, "temperature": params.temperature, "generated_at": utc_now_iso()},
	}


@router.get("/content/{content_id}")
async def get_content(content_id: str, store: ContentStore = Depends(get_store)):
	try:
		return content_out(store.get_content(content_id))
	except AppError as err:
		raise http_error(err)


@router.put("/content/{content_id}")
async def update_content(content_id: str, req: ContentUpdate, store: ContentStore = Depends(get_store)):
	try:
		row = store.get_content(content_id)
		row = store.upsert_content(row.prompt_id, req.content_text, approved=False)
	except AppError as err:
		raise http_error(err)
	return content_out(row)


@router.post("/content/{content_id}/approve")
async def approve_content(content_id: str, req: ApprovalRequest, store: ContentStore = Depends(get_store)):
	try:
		row = store.set_approval(store.get_content(content_id), req.approved)
	except AppError as err:
		raise http_error(err)
	return content_out(row)


@router.post("/content/{content_id}/validate")
async def validate_content(
	content_id: str,
	store: ContentStore = Depends(get_store),
	client: Optional[AnthropicClient] = Depends(get_llm_client),
):
	llm = require_llm(client)
	try:
		content = store.get_content(content_id)
		chain = store.load_prompt_chain(content.prompt_id)
		charge_request(store)
		prompt = build_validation_prompt(
			EducationalDNA.from_blob(chain.project.config_dna),
			SectionInput.from_row(chain.section),
			content.content_text,
		)
		raw = await llm.generate_with_retry(prompt, validation_parameters(settings))
		result = parse_validation_response(raw)
		row = store.upsert_validation(content.id, result, auto_approve=True)
	except AppError as err:
		logger.error("Validation failed for content %s: %s", content_id, err.message)
		raise http_error(err)
	return validation_out(row)


@router.get("/content/{content_id}/validation")
async def get_validation(content_id: str, store: ContentStore = Depends(get_store)):
	try:
		row = _validation_for(store, content_id)
	except AppError as err:
		raise http_error(err)
	return validation_out(row)


@router.post("/content/{content_id}/validation/approve")
async def approve_validation(content_id: str, req: ApprovalRequest, store: ContentStore = Depends(get_store)):
	"""Manual override of the automatic approval decision."""
	try:
		row = store.set_approval(_validation_for(store, content_id), req.approved)
	except AppError as err:
		raise http_error(err)
	return validation_out(row)


def _validation_for(store: ContentStore, content_id: str) -> Validation:
	content = store.get_content(content_id)
	row = store.find_validation(content.id)
	if row is None:
		raise MissingEntityError("Validation not found")
	return row
