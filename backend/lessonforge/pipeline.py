from __future__ import annotations
from typing import Dict, List, Optional

from .exceptions import StageBlockedError
from .models import ContentItem, Project, Prompt, Section, Validation
from .persistence import ContentStore
from .schemas import EducationalDNA, OutlineStructure


PIPELINE_STAGES: List[Dict[str, object]] = [
	{"id": "project_config", "title": "Project Configuration", "description": "Set up your project parameters and learning objectives", "position": 1},
	{"id": "outline_context", "title": "Outline Context", "description": "Define the structure and context for your content", "position": 2},
	{"id": "section_details", "title": "Section Details", "description": "Specify detailed requirements for each content section", "position": 3},
	{"id": "claude_prompts", "title": "Claude Prompts", "description": "Generate or customize AI prompts for content creation", "position": 4},
	{"id": "content", "title": "Content", "description": "Review and edit the AI-generated educational content", "position": 5},
	{"id": "validation", "title": "Validation", "description": "Validate content against standards and requirements", "position": 6},
]

STAGE_IDS: List[str] = [str(s["id"]) for s in PIPELINE_STAGES]
# Status after the last stage has been passed
COMPLETE = "complete"


def stage_info(stage_id: str) -> Optional[Dict[str, object]]:
	for stage in PIPELINE_STAGES:
		if stage["id"] == stage_id:
			return stage
	return None


def completed_stages(current: str) -> List[str]:
	if current == COMPLETE:
		return list(STAGE_IDS)
	info = stage_info(current)
	if info is None:
		return []
	return [str(s["id"]) for s in PIPELINE_STAGES if int(s["position"]) < int(info["position"])]


def _sections(store: ContentStore, project: Project) -> List[Section]:
	outline = store.find_outline(project.id)
	return store.list_sections(outline.id) if outline else []


def stage_issues(store: ContentStore, project: Project, stage: str) -> List[str]:
	"""Reasons why ``stage`` is not finished for ``project``; empty when it is."""
	issues: List[str] = []
	if stage == "project_config":
		dna = EducationalDNA.from_blob(project.config_dna)
		if not dna.project_type:
			issues.append("Project type is not configured")
	elif stage == "outline_context":
		outline = store.find_outline(project.id)
		if outline is None:
			issues.append("Outline has not been created")
		elif not OutlineStructure.model_validate(outline.structure or {}).summary:
			issues.append("Outline summary is missing")
	elif stage == "section_details":
		if not _sections(store, project):
			issues.append("Add at least one section")
	elif stage == "claude_prompts":
		for section in _sections(store, project):
			prompt: Optional[Prompt] = store.find_prompt_for_section(section.id)
			if prompt is None:
				issues.append(f"Section '{section.title}' has no prompt")
			elif not prompt.is_approved:
				issues.append(f"Prompt for section '{section.title}' is not approved")
	elif stage == "content":
		for section in _sections(store, project):
			prompt = store.find_prompt_for_section(section.id)
			content: Optional[ContentItem] = store.find_content_for_prompt(prompt.id) if prompt else None
			if content is None or not (content.content_text or "").strip():
				issues.append(f"Section '{section.title}' has no generated content")
			elif not content.is_approved:
				issues.append(f"Content for section '{section.title}' is not approved")
	elif stage == "validation":
		for section in _sections(store, project):
			prompt = store.find_prompt_for_section(section.id)
			content = store.find_content_for_prompt(prompt.id) if prompt else None
			validation: Optional[Validation] = store.find_validation(content.id) if content else None
			if validation is None:
				issues.append(f"Content for section '{section.title}' has not been validated")
			elif not validation.is_approved:
				issues.append(f"Validation for section '{section.title}' is not approved")
	return issues


def advance_project(store: ContentStore, project: Project) -> Project:
	"""Move ``project`` to its next stage once the current one is finished."""
	current = project.pipeline_status
	info = stage_info(current)
	if info is None:
		raise StageBlockedError(current, ["Project has already completed the pipeline"])
	issues = stage_issues(store, project, current)
	if issues:
		raise StageBlockedError(current, issues)
	position = int(info["position"])
	next_info = next((s for s in PIPELINE_STAGES if int(s["position"]) == position + 1), None)
	percentage = min(100, round(position / len(PIPELINE_STAGES) * 100))
	project.pipeline_status = str(next_info["id"]) if next_info else COMPLETE
	project.completion_percentage = max(project.completion_percentage or 0, percentage)
	store.save(project)
	return project
