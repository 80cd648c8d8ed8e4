"""
Shared pydantic models for the educational DNA blob, outline/section data,
generation parameters and AI quality results.

The wizard stores its configuration with camelCase keys; the models accept
either camelCase or snake_case and ignore unknown keys so partially filled
configurations always validate.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

	@model_validator(mode="before")
	@classmethod
	def _drop_nulls(cls, data: Any) -> Any:
		# JSON nulls behave like absent keys
		if isinstance(data, dict):
			return {k: v for k, v in data.items() if v is not None}
		return data


# ============================================================================
# EDUCATIONAL DNA
# ============================================================================

class EducationalContext(_CamelModel):
	grade_level: List[str] = Field(default_factory=list)
	subject_area: List[str] = Field(default_factory=list)
	standards: List[str] = Field(default_factory=list)


class LearningObjective(_CamelModel):
	text: str = ""
	blooms_level: Optional[str] = None


class PedagogicalApproach(_CamelModel):
	teaching_methodology: List[str] = Field(default_factory=list)
	assessment_philosophy: Optional[str] = None
	differentiation_strategies: List[str] = Field(default_factory=list)


class CulturalAccessibility(_CamelModel):
	language_complexity: Optional[str] = None
	cultural_inclusion: List[str] = Field(default_factory=list)
	accessibility_needs: List[str] = Field(default_factory=list)


class PlannedSection(_CamelModel):
	title: str = ""
	description: Optional[str] = None
	sequence: int = 0


class ContentStructure(_CamelModel):
	organization_pattern: Optional[str] = None
	content_sections: List[PlannedSection] = Field(default_factory=list)
	estimated_duration: Optional[str] = None


class EducationalDNA(_CamelModel):
	project_type: Optional[str] = None
	educational_context: EducationalContext = Field(default_factory=EducationalContext)
	learning_objectives: List[LearningObjective] = Field(default_factory=list)
	pedagogical_approach: PedagogicalApproach = Field(default_factory=PedagogicalApproach)
	cultural_accessibility: CulturalAccessibility = Field(default_factory=CulturalAccessibility)
	content_structure: ContentStructure = Field(default_factory=ContentStructure)

	@classmethod
	def from_blob(cls, blob: Optional[Dict[str, Any]]) -> "EducationalDNA":
		return cls.model_validate(blob or {})


# ============================================================================
# OUTLINE / SECTIONS
# ============================================================================

class OutlineStructure(_CamelModel):
	summary: Optional[str] = None
	audience: Optional[str] = None
	learning_goals: Optional[str] = None
	key_topics: List[str] = Field(default_factory=list)


class SectionConfig(_CamelModel):
	learning_objectives: List[str] = Field(default_factory=list)
	activity_types: List[str] = Field(default_factory=list)
	resources: List[str] = Field(default_factory=list)
	notes: Optional[str] = None


class SectionInput(BaseModel):
	title: str
	description: Optional[str] = None
	config: SectionConfig = Field(default_factory=SectionConfig)

	@classmethod
	def from_row(cls, row: Any) -> "SectionInput":
		return cls(
			title=row.title,
			description=row.description,
			config=SectionConfig.model_validate(row.config or {}),
		)


class GenerationParameters(BaseModel):
	model: str
	max_tokens: int = 4000
	temperature: float = 0.7


# ============================================================================
# QUALITY / VALIDATION RESULTS
# ============================================================================

def _clamp_score(value: Any) -> float:
	try:
		score = float(value)
	except (TypeError, ValueError):
		return 0.0
	return max(0.0, min(10.0, score))


class ReadingLevel(BaseModel):
	score: float = 0.0
	level: str = "Not specified"

	@field_validator("score", mode="before")
	@classmethod
	def _clamp(cls, v: Any) -> float:
		return _clamp_score(v)


class QualityIndicators(BaseModel):
	"""Live quality metrics on a 0-10 scale."""
	standards_alignment: float
	reading_level: ReadingLevel
	pedagogical_alignment: float
	accessibility: float
	cultural_sensitivity: float

	@field_validator("standards_alignment", "pedagogical_alignment", "accessibility", "cultural_sensitivity", mode="before")
	@classmethod
	def _clamp(cls, v: Any) -> float:
		return _clamp_score(v)

	@field_validator("reading_level", mode="before")
	@classmethod
	def _bare_score(cls, v: Any) -> Any:
		# Some responses give the reading level as a single number
		if isinstance(v, (int, float)):
			return {"score": v}
		return v


class ValidationResult(BaseModel):
	quality_score: float = 0.0
	standards_alignment_score: float = 0.0
	improvement_suggestions: str = ""
	strengths: List[str] = Field(default_factory=list)
	weaknesses: List[str] = Field(default_factory=list)

	@field_validator("quality_score", "standards_alignment_score", mode="before")
	@classmethod
	def _numeric(cls, v: Any) -> float:
		return _clamp_score(v)

	@field_validator("strengths", "weaknesses", mode="before")
	@classmethod
	def _listify(cls, v: Any) -> List[str]:
		return [str(x) for x in v] if isinstance(v, list) else []

	@field_validator("improvement_suggestions", mode="before")
	@classmethod
	def _text(cls, v: Any) -> str:
		return str(v) if v else ""
