from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import MissingEntityError, PersistenceError
from .models import ContentItem, Outline, Project, Prompt, Section, Validation
from .schemas import ValidationResult
from .settings import Settings

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


def meets_threshold(result: ValidationResult, threshold: float) -> bool:
	return result.quality_score >= threshold and result.standards_alignment_score >= threshold


@dataclass
class PromptChain:
	prompt: Prompt
	section: Section
	outline: Outline
	project: Project


class ContentStore:
	"""Data access scoped to one user.

	Every lookup walks the Prompt -> Section -> Outline -> Project chain and
	only returns rows whose project belongs to ``username``; rows owned by
	anyone else are reported as missing.
	"""

	def __init__(self, db: Session, username: str, config: Settings) -> None:
		self.db = db
		self.username = username
		self.approval_threshold = config.approval_threshold

	def _commit(self, *rows: Any) -> None:
		try:
			for row in rows:
				self.db.add(row)
			self.db.commit()
		except SQLAlchemyError as err:
			self.db.rollback()
			logger.error("Database write failed: %s", err)
			raise PersistenceError(f"Database write failed: {err}", err) from err

	# ------------------------------------------------------------------
	# Scoped reads
	# ------------------------------------------------------------------

	def get_project(self, project_id: str) -> Project:
		row = self.db.query(Project).filter(Project.id == project_id, Project.owner == self.username).first()
		if row is None:
			raise MissingEntityError("Project not found")
		return row

	def list_projects(self) -> List[Project]:
		return (
			self.db.query(Project)
			.filter(Project.owner == self.username)
			.order_by(Project.updated_at.desc())
			.all()
		)

	def find_outline(self, project_id: str) -> Optional[Outline]:
		project = self.get_project(project_id)
		return self.db.query(Outline).filter(Outline.project_id == project.id).first()

	def list_sections(self, outline_id: str) -> List[Section]:
		return (
			self.db.query(Section)
			.filter(Section.outline_id == outline_id)
			.order_by(Section.order_index.asc())
			.all()
		)

	def get_section(self, section_id: str) -> Section:
		row = (
			self.db.query(Section)
			.join(Outline, Outline.id == Section.outline_id)
			.join(Project, Project.id == Outline.project_id)
			.filter(Section.id == section_id, Project.owner == self.username)
			.first()
		)
		if row is None:
			raise MissingEntityError("Section not found")
		return row

	def _prompt_query(self):
		return (
			self.db.query(Prompt)
			.join(Section, Section.id == Prompt.section_id)
			.join(Outline, Outline.id == Section.outline_id)
			.join(Project, Project.id == Outline.project_id)
			.filter(Project.owner == self.username)
		)

	def get_prompt(self, prompt_id: str) -> Prompt:
		row = self._prompt_query().filter(Prompt.id == prompt_id).first()
		if row is None:
			raise MissingEntityError("Prompt not found")
		return row

	def find_prompt_for_section(self, section_id: str) -> Optional[Prompt]:
		return self._prompt_query().filter(Prompt.section_id == section_id).first()

	def get_content(self, content_id: str) -> ContentItem:
		row = (
			self.db.query(ContentItem)
			.join(Prompt, Prompt.id == ContentItem.prompt_id)
			.join(Section, Section.id == Prompt.section_id)
			.join(Outline, Outline.id == Section.outline_id)
			.join(Project, Project.id == Outline.project_id)
			.filter(ContentItem.id == content_id, Project.owner == self.username)
			.first()
		)
		if row is None:
			raise MissingEntityError("Content item not found")
		return row

	def find_content_for_prompt(self, prompt_id: str) -> Optional[ContentItem]:
		return self.db.query(ContentItem).filter(ContentItem.prompt_id == prompt_id).first()

	def find_validation(self, content_id: str) -> Optional[Validation]:
		return self.db.query(Validation).filter(Validation.content_id == content_id).first()

	def load_prompt_chain(self, prompt_id: str) -> PromptChain:
		prompt = self.db.get(Prompt, prompt_id)
		if prompt is None:
			raise MissingEntityError("Prompt not found")
		section = self.db.get(Section, prompt.section_id)
		if section is None:
			raise MissingEntityError("Section not found for prompt")
		outline = self.db.get(Outline, section.outline_id)
		if outline is None:
			raise MissingEntityError("Outline not found for section")
		project = self.db.get(Project, outline.project_id)
		if project is None or project.owner != self.username:
			# Foreign rows look exactly like missing rows
			raise MissingEntityError("Prompt not found" if project is not None else "Project configuration not found")
		return PromptChain(prompt=prompt, section=section, outline=outline, project=project)

	# ------------------------------------------------------------------
	# Writes
	# ------------------------------------------------------------------

	def upsert_prompt(self, section_id: str, prompt_text: str, parameters: Dict[str, Any], *, is_generated: bool) -> Prompt:
		section = self.get_section(section_id)
		row = self.find_prompt_for_section(section.id)
		if row is None:
			row = Prompt(section_id=section.id)
		row.prompt_text = prompt_text
		row.parameters = dict(parameters)
		row.is_generated = is_generated
		row.is_approved = False
		self._commit(row)
		return row

	def begin_content(self, prompt_id: str, metadata: Dict[str, Any]) -> ContentItem:
		"""Placeholder row that anchors a streaming generation.

		An existing item keeps its text until the new one is final, but its
		metadata is refreshed and its approval withdrawn.
		"""
		prompt = self.get_prompt(prompt_id)
		row = self.find_content_for_prompt(prompt.id)
		if row is None:
			row = ContentItem(prompt_id=prompt.id, content_text="")
		row.metadata_ = dict(metadata)
		row.is_approved = False
		self._commit(row)
		return row

	def upsert_content(
		self,
		prompt_id: str,
		text: str,
		metadata: Optional[Dict[str, Any]] = None,
		approved: Optional[bool] = None,
	) -> ContentItem:
		prompt = self.get_prompt(prompt_id)
		row = self.find_content_for_prompt(prompt.id)
		if row is None:
			row = ContentItem(prompt_id=prompt.id, metadata_={}, is_approved=False)
		row.content_text = text
		if metadata is not None:
			row.metadata_ = dict(metadata)
		if approved is not None:
			row.is_approved = approved
		self._commit(row)
		return row

	def merge_content_metadata(self, content_id: str, extra: Dict[str, Any]) -> ContentItem:
		row = self.get_content(content_id)
		row.metadata_ = {**(row.metadata_ or {}), **extra}
		self._commit(row)
		return row

	def upsert_validation(self, content_id: str, result: ValidationResult, *, auto_approve: bool = True) -> Validation:
		content = self.get_content(content_id)
		row = self.find_validation(content.id)
		if row is None:
			row = Validation(content_id=content.id)
		row.quality_score = result.quality_score
		row.standards_alignment_score = result.standards_alignment_score
		row.improvement_suggestions = result.improvement_suggestions
		row.validation_data = result.model_dump()
		row.is_approved = auto_approve and meets_threshold(result, self.approval_threshold)
		self._commit(row)
		return row

	def ensure_outline(self, project_id: str) -> Outline:
		project = self.get_project(project_id)
		row = self.db.query(Outline).filter(Outline.project_id == project.id).first()
		if row is None:
			row = Outline(project_id=project.id, structure={}, is_complete=False)
			self._commit(row)
		return row

	def delete_project(self, project_id: str) -> None:
		"""Remove a project together with everything generated for it."""
		project = self.get_project(project_id)
		doomed: List[Any] = []
		outline = self.db.query(Outline).filter(Outline.project_id == project.id).first()
		if outline is not None:
			for section in self.list_sections(outline.id):
				prompt = self.find_prompt_for_section(section.id)
				content = self.find_content_for_prompt(prompt.id) if prompt else None
				validation = self.find_validation(content.id) if content else None
				# Children before parents
				doomed.extend(r for r in (validation, content, prompt) if r is not None)
				doomed.append(section)
			doomed.append(outline)
		doomed.append(project)
		try:
			for row in doomed:
				self.db.delete(row)
				self.db.flush()
			self.db.commit()
		except SQLAlchemyError as err:
			self.db.rollback()
			logger.error("Database delete failed: %s", err)
			raise PersistenceError(f"Database delete failed: {err}", err) from err

	def set_approval(self, row: Any, approved: bool) -> Any:
		row.is_approved = approved
		self._commit(row)
		return row

	def save(self, *rows: Any) -> None:
		self._commit(*rows)
