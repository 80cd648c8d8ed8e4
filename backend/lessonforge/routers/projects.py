from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..dependencies import get_store, http_error
from ..exceptions import AppError, MissingEntityError
from ..models import Outline, Project, Section
from ..persistence import ContentStore
from ..pipeline import PIPELINE_STAGES, completed_stages, advance_project, stage_info, stage_issues
from ..prompt_synthesizer import planned_sections
from ..schemas import EducationalDNA, OutlineStructure, SectionConfig


router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectCreate(BaseModel):
	title: str
	description: Optional[str] = None
	config_dna: Dict[str, Any] = Field(default_factory=dict)


class ProjectUpdate(BaseModel):
	title: Optional[str] = None
	description: Optional[str] = None
	config_dna: Optional[Dict[str, Any]] = None


class OutlineUpdate(BaseModel):
	structure: Dict[str, Any] = Field(default_factory=dict)
	is_complete: Optional[bool] = None


class SectionCreate(BaseModel):
	title: str
	description: Optional[str] = None
	order_index: Optional[int] = None
	config: Dict[str, Any] = Field(default_factory=dict)


class SectionUpdate(BaseModel):
	title: Optional[str] = None
	description: Optional[str] = None
	order_index: Optional[int] = None
	config: Optional[Dict[str, Any]] = None
	is_complete: Optional[bool] = None


def project_out(row: Project) -> Dict[str, Any]:
	return {
		"id": row.id,
		"title": row.title,
		"description": row.description,
		"pipeline_status": row.pipeline_status,
		"completion_percentage": row.completion_percentage,
		"config_dna": row.config_dna or {},
		"stage": stage_info(row.pipeline_status),
		"completed_stages": completed_stages(row.pipeline_status),
		"created_at": row.created_at,
		"updated_at": row.updated_at,
	}


def outline_out(row: Outline) -> Dict[str, Any]:
	return {
		"id": row.id,
		"project_id": row.project_id,
		"structure": row.structure or {},
		"is_complete": row.is_complete,
	}


def section_out(row: Section) -> Dict[str, Any]:
	return {
		"id": row.id,
		"outline_id": row.outline_id,
		"title": row.title,
		"description": row.description,
		"order_index": row.order_index,
		"config": row.config or {},
		"is_complete": row.is_complete,
	}


@router.get("/stages")
async def list_stages():
	return {"stages": PIPELINE_STAGES}


@router.get("")
async def list_projects(store: ContentStore = Depends(get_store)):
	return [project_out(p) for p in store.list_projects()]


@router.post("", status_code=201)
async def create_project(req: ProjectCreate, store: ContentStore = Depends(get_store)):
	# Normalise so later reads see a well-formed blob
	dna = EducationalDNA.from_blob(req.config_dna)
	row = Project(
		owner=store.username,
		title=req.title.strip() or "Untitled project",
		description=req.description,
		config_dna=dna.model_dump(by_alias=True, exclude_none=True),
	)
	try:
		store.save(row)
	except AppError as err:
		raise http_error(err)
	return project_out(row)


@router.get("/{project_id}")
async def get_project(project_id: str, store: ContentStore = Depends(get_store)):
	try:
		row = store.get_project(project_id)
	except AppError as err:
		raise http_error(err)
	out = project_out(row)
	out["open_issues"] = stage_issues(store, row, row.pipeline_status)
	return out


@router.put("/{project_id}")
async def update_project(project_id: str, req: ProjectUpdate, store: ContentStore = Depends(get_store)):
	try:
		row = store.get_project(project_id)
		if req.title is not None:
			row.title = req.title
		if req.description is not None:
			row.description = req.description
		if req.config_dna is not None:
			row.config_dna = EducationalDNA.from_blob(req.config_dna).model_dump(by_alias=True, exclude_none=True)
		store.save(row)
	except AppError as err:
		raise http_error(err)
	return project_out(row)


@router.delete("/{project_id}", status_code=204)
async def delete_project(project_id: str, store: ContentStore = Depends(get_store)):
	try:
		store.delete_project(project_id)
	except AppError as err:
		raise http_error(err)


@router.post("/{project_id}/advance")
async def advance(project_id: str, store: ContentStore = Depends(get_store)):
	try:
		row = advance_project(store, store.get_project(project_id))
	except AppError as err:
		raise http_error(err)
	return project_out(row)


# ---------------------------------------------------------------------------
# Outline
# ---------------------------------------------------------------------------

@router.get("/{project_id}/outline")
async def get_outline(project_id: str, store: ContentStore = Depends(get_store)):
	try:
		row = store.ensure_outline(project_id)
	except AppError as err:
		raise http_error(err)
	return outline_out(row)


@router.put("/{project_id}/outline")
async def update_outline(project_id: str, req: OutlineUpdate, store: ContentStore = Depends(get_store)):
	try:
		row = store.ensure_outline(project_id)
		row.structure = OutlineStructure.model_validate(req.structure).model_dump(by_alias=True, exclude_none=True)
		if req.is_complete is not None:
			row.is_complete = req.is_complete
		store.save(row)
	except AppError as err:
		raise http_error(err)
	return outline_out(row)


@router.post("/{project_id}/outline/seed")
async def seed_sections(project_id: str, store: ContentStore = Depends(get_store)):
	"""Create sections from the outline's key topics, or from the planned sections of the project config.

	Does nothing when the outline already has sections.
	"""
	try:
		project = store.get_project(project_id)
		outline = store.ensure_outline(project.id)
		existing = store.list_sections(outline.id)
		if existing:
			return [section_out(s) for s in existing]
		topics = OutlineStructure.model_validate(outline.structure or {}).key_topics
		if topics:
			rows = [
				Section(outline_id=outline.id, title=topic, description=None, order_index=i, config={})
				for i, topic in enumerate(t for t in topics if t.strip())
			]
		else:
			plans = planned_sections(EducationalDNA.from_blob(project.config_dna))
			rows = [
				Section(outline_id=outline.id, title=p.title, description=p.description, order_index=i, config={})
				for i, p in enumerate(plans)
			]
		store.save(*rows)
	except AppError as err:
		raise http_error(err)
	return [section_out(s) for s in rows]


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@router.get("/{project_id}/sections")
async def list_sections(project_id: str, store: ContentStore = Depends(get_store)):
	try:
		outline = store.find_outline(project_id)
	except AppError as err:
		raise http_error(err)
	if outline is None:
		return []
	return [section_out(s) for s in store.list_sections(outline.id)]


@router.post("/{project_id}/sections", status_code=201)
async def create_section(project_id: str, req: SectionCreate, store: ContentStore = Depends(get_store)):
	try:
		outline = store.ensure_outline(project_id)
		siblings: List[Section] = store.list_sections(outline.id)
		order = req.order_index if req.order_index is not None else len(siblings)
		row = Section(
			outline_id=outline.id,
			title=req.title,
			description=req.description,
			order_index=order,
			config=SectionConfig.model_validate(req.config).model_dump(by_alias=True, exclude_none=True),
		)
		store.save(row)
	except AppError as err:
		raise http_error(err)
	return section_out(row)


@router.put("/{project_id}/sections/{section_id}")
async def update_section(project_id: str, section_id: str, req: SectionUpdate, store: ContentStore = Depends(get_store)):
	try:
		outline = store.find_outline(project_id)
		row = store.get_section(section_id)
		if outline is None or row.outline_id != outline.id:
			raise MissingEntityError("Section not found")
		if req.title is not None:
			row.title = req.title
		if req.description is not None:
			row.description = req.description
		if req.order_index is not None:
			row.order_index = req.order_index
		if req.config is not None:
			row.config = SectionConfig.model_validate(req.config).model_dump(by_alias=True, exclude_none=True)
		if req.is_complete is not None:
			row.is_complete = req.is_complete
		store.save(row)
	except AppError as err:
		raise http_error(err)
	return section_out(row)
