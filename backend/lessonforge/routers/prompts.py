from __future__ import annotations
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..dependencies import get_store, http_error
from ..exceptions import AppError, MissingEntityError
from ..models import Prompt
from ..persistence import ContentStore
from ..prompt_synthesizer import synthesize_prompt
from ..schemas import EducationalDNA, OutlineStructure, SectionInput
from ..settings import settings


router = APIRouter(tags=["prompts"])


class SynthesizeRequest(BaseModel):
	section_id: Optional[str] = None
	model: Optional[str] = None


class PromptUpdate(BaseModel):
	prompt_text: str
	parameters: Optional[Dict[str, Any]] = None


class ApprovalRequest(BaseModel):
	approved: bool = True


def prompt_out(row: Prompt) -> Dict[str, Any]:
	return {
		"id": row.id,
		"section_id": row.section_id,
		"prompt_text": row.prompt_text,
		"parameters": row.parameters or {},
		"is_generated": row.is_generated,
		"is_approved": row.is_approved,
	}


@router.post("/projects/{project_id}/prompts/synthesize")
async def synthesize(project_id: str, req: SynthesizeRequest, store: ContentStore = Depends(get_store)):
	"""Build the generation prompt for one section, or for the whole outline when no section is given.

	Only the single-section form is stored.
	"""
	try:
		project = store.get_project(project_id)
		outline_row = store.find_outline(project.id)
		outline = OutlineStructure.model_validate(outline_row.structure or {}) if outline_row else None
		if req.section_id:
			section_row = store.get_section(req.section_id)
			if outline_row is None or section_row.outline_id != outline_row.id:
				raise MissingEntityError("Section not found")
			rows = [section_row]
		else:
			rows = store.list_sections(outline_row.id) if outline_row else []
		result = synthesize_prompt(
			EducationalDNA.from_blob(project.config_dna),
			outline,
			[SectionInput.from_row(r) for r in rows],
			model=req.model or settings.default_model,
		)
		out: Dict[str, Any] = {"prompt_text": result.text, "parameters": result.parameters.model_dump()}
		if req.section_id:
			row = store.upsert_prompt(req.section_id, result.text, result.parameters.model_dump(), is_generated=True)
			out["prompt"] = prompt_out(row)
	except AppError as err:
		raise http_error(err)
	return out


@router.get("/prompts/{prompt_id}")
async def get_prompt(prompt_id: str, store: ContentStore = Depends(get_store)):
	try:
		return prompt_out(store.get_prompt(prompt_id))
	except AppError as err:
		raise http_error(err)


@router.put("/prompts/{prompt_id}")
async def update_prompt(prompt_id: str, req: PromptUpdate, store: ContentStore = Depends(get_store)):
	"""Educator edit: the text is kept verbatim and approval is withdrawn."""
	try:
		row = store.get_prompt(prompt_id)
		parameters = req.parameters if req.parameters is not None else (row.parameters or {})
		row = store.upsert_prompt(row.section_id, req.prompt_text, parameters, is_generated=False)
	except AppError as err:
		raise http_error(err)
	return prompt_out(row)


@router.post("/prompts/{prompt_id}/approve")
async def approve_prompt(prompt_id: str, req: ApprovalRequest, store: ContentStore = Depends(get_store)):
	try:
		row = store.set_approval(store.get_prompt(prompt_id), req.approved)
	except AppError as err:
		raise http_error(err)
	return prompt_out(row)
