"""
Prompt Synthesizer
==================

Builds the instruction text sent to the generation model from a project's
educational DNA, its outline and zero or more sections, and derives the
sampling parameters for the call.

Every slot of the template is always rendered: values the educator did not
supply are replaced with the PLACEHOLDER literal so the instruction keeps the
same structure no matter how complete the configuration is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .schemas import EducationalDNA, GenerationParameters, OutlineStructure, SectionInput


PLACEHOLDER = "Not specified"

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4000
LONG_SECTION_MAX_TOKENS = 6000
LONG_SECTION_CHARS = 500
HIGHER_ORDER_DELTA = 0.1
MAX_TEMPERATURE = 1.0

# Project type -> base sampling temperature
TYPE_TEMPERATURES: Dict[str, float] = {
	"assessment": 0.5,
	"activity": 0.8,
}

HIGHER_ORDER_BLOOMS = {"analyze", "evaluate", "create"}

TYPE_LABELS: Dict[str, str] = {
	"lesson_plan": "lesson plan",
	"course_module": "course module",
	"assessment": "assessment",
	"activity": "activity",
	"curriculum": "curriculum",
}

# Type-specific structural requirement (item 4 of the output requirements)
TYPE_REQUIREMENTS: Dict[str, str] = {
	"lesson_plan": "Include clear instructions, activities, and assessment methods.",
	"course_module": "Organize the module into sequenced lessons with transitions and checkpoints.",
	"assessment": "Include a balanced mix of question types with an answer key and scoring guidance.",
	"activity": "Include step-by-step facilitation instructions, required materials, and timing.",
	"curriculum": "Map each unit to the standards and show how skills progress across the sequence.",
}
GENERIC_REQUIREMENT = "Include clear instructions and learning activities."

DEFAULT_STYLE = "balanced"

GENERATION_STYLES: Dict[str, Dict[str, object]] = {
	"creative": {
		"directive": "Generate creative, engaging, and imaginative educational content. Feel free to use analogies, stories, and thought-provoking examples.",
		"temperature": 0.9,
	},
	"balanced": {
		"directive": "Generate well-balanced educational content that combines clarity with engagement. Use a mix of straightforward explanations and illustrative examples.",
		"temperature": 0.7,
	},
	"conservative": {
		"directive": "Generate clear, concise, and straightforward educational content. Focus on accuracy, clarity, and alignment with educational standards.",
		"temperature": 0.3,
	},
}


@dataclass(frozen=True)
class SynthesizedPrompt:
	text: str
	parameters: GenerationParameters


# ============================================================================
# FORMATTING HELPERS
# ============================================================================

def value_or_placeholder(text: Optional[str]) -> str:
	text = (text or "").strip()
	return text if text else PLACEHOLDER


def joined(items: Iterable[str], sep: str = ", ") -> str:
	cleaned = [s.strip() for s in items if s and s.strip()]
	return sep.join(cleaned) if cleaned else PLACEHOLDER


def bullets(items: Iterable[str]) -> str:
	cleaned = [s.strip() for s in items if s and s.strip()]
	if not cleaned:
		return PLACEHOLDER
	return "\n".join(f"- {s}" for s in cleaned)


def objective_lines(dna: EducationalDNA) -> str:
	lines = [
		f"- {value_or_placeholder(obj.text)} (Bloom's Level: {value_or_placeholder(obj.blooms_level)})"
		for obj in dna.learning_objectives
	]
	return "\n".join(lines) if lines else PLACEHOLDER


def _section_block(section: SectionInput) -> str:
	cfg = section.config
	return (
		f"### {value_or_placeholder(section.title)}\n"
		f"{value_or_placeholder(section.description)}\n\n"
		f"Learning Objectives:\n{bullets(cfg.learning_objectives)}\n\n"
		f"Activity Types:\n{bullets(cfg.activity_types)}\n\n"
		f"Resources:\n{bullets(cfg.resources)}\n\n"
		f"Notes: {value_or_placeholder(cfg.notes)}"
	)


def _type_label(project_type: Optional[str]) -> str:
	return TYPE_LABELS.get(project_type or "", "educational content")


# ============================================================================
# PUBLIC API
# ============================================================================

def derive_parameters(
	dna: EducationalDNA,
	sections: Sequence[SectionInput] = (),
	*,
	model: str,
) -> GenerationParameters:
	"""Deterministic parameter policy for a synthesized prompt.

	Project type picks the base temperature, a majority of higher-order
	objectives nudges it up (capped at 1.0), and any long section
	description moves the token budget to the second tier.
	"""
	temperature = TYPE_TEMPERATURES.get(dna.project_type or "", DEFAULT_TEMPERATURE)
	objectives = dna.learning_objectives
	if objectives:
		higher = [o for o in objectives if (o.blooms_level or "").lower() in HIGHER_ORDER_BLOOMS]
		if len(higher) > len(objectives) / 2:
			temperature = min(temperature + HIGHER_ORDER_DELTA, MAX_TEMPERATURE)
	max_tokens = DEFAULT_MAX_TOKENS
	if any(len(s.description or "") > LONG_SECTION_CHARS for s in sections):
		max_tokens = LONG_SECTION_MAX_TOKENS
	return GenerationParameters(model=model, max_tokens=max_tokens, temperature=round(temperature, 2))


def synthesize_prompt(
	dna: EducationalDNA,
	outline: Optional[OutlineStructure],
	sections: Sequence[SectionInput],
	*,
	model: str,
) -> SynthesizedPrompt:
	outline = outline or OutlineStructure()
	ctx = dna.educational_context
	ped = dna.pedagogical_approach
	acc = dna.cultural_accessibility
	label = _type_label(dna.project_type)
	section_details = "\n\n".join(_section_block(s) for s in sections) if sections else PLACEHOLDER
	requirement = TYPE_REQUIREMENTS.get(dna.project_type or "", GENERIC_REQUIREMENT)

	text = (
		f"# Educational {TYPE_LABELS.get(dna.project_type or '', 'content').title()} Generation\n\n"
		"## PROJECT CONTEXT\n"
		f"You are to generate high-quality {label} for {joined(ctx.subject_area)} "
		f"aimed at {joined(ctx.grade_level)} students.\n\n"
		"## EDUCATIONAL STANDARDS\n"
		"Follow these educational standards:\n"
		f"{bullets(ctx.standards)}\n\n"
		"## LEARNING OBJECTIVES\n"
		f"{objective_lines(dna)}\n\n"
		"## PEDAGOGICAL APPROACH\n"
		f"- Teaching Methodology: {joined(ped.teaching_methodology)}\n"
		f"- Assessment Philosophy: {value_or_placeholder(ped.assessment_philosophy)}\n"
		f"- Differentiation Strategies: {joined(ped.differentiation_strategies)}\n\n"
		"## CULTURAL AND ACCESSIBILITY CONSIDERATIONS\n"
		f"- Language Complexity: {value_or_placeholder(acc.language_complexity)}\n"
		f"- Cultural Inclusion: {joined(acc.cultural_inclusion)}\n"
		f"- Accessibility Needs: {joined(acc.accessibility_needs)}\n\n"
		"## OUTLINE CONTEXT\n"
		f"- Summary: {value_or_placeholder(outline.summary)}\n"
		f"- Audience: {value_or_placeholder(outline.audience)}\n"
		f"- Learning Goals: {value_or_placeholder(outline.learning_goals)}\n"
		f"- Key Topics: {joined(outline.key_topics)}\n\n"
		"## SECTION DETAILS\n"
		f"{section_details}\n\n"
		"## OUTPUT REQUIREMENTS\n"
		f"1. Create engaging, pedagogically sound {label}.\n"
		"2. Follow the specified teaching methodology.\n"
		"3. Ensure content is appropriate for the grade level and subject area.\n"
		f"4. {requirement}\n"
		"5. Consider cultural relevance and accessibility needs.\n"
		"6. Align all content with specified educational standards.\n"
		"7. Format the output in clean Markdown.\n"
	)
	return SynthesizedPrompt(text=text, parameters=derive_parameters(dna, sections, model=model))


def resolve_style(style: Optional[str]) -> str:
	style = (style or "").strip().lower()
	return style if style in GENERATION_STYLES else DEFAULT_STYLE


def style_temperature(style: Optional[str]) -> float:
	return float(GENERATION_STYLES[resolve_style(style)]["temperature"])


def educational_context_block(dna: EducationalDNA) -> str:
	ctx = dna.educational_context
	ped = dna.pedagogical_approach
	acc = dna.cultural_accessibility
	return (
		"Educational Context:\n"
		f"- Grade Level: {joined(ctx.grade_level)}\n"
		f"- Subject Area: {joined(ctx.subject_area)}\n"
		f"- Standards: {joined(ctx.standards)}\n\n"
		"Pedagogical Approach:\n"
		f"- Teaching Methodology: {joined(ped.teaching_methodology)}\n"
		f"- Assessment Philosophy: {value_or_placeholder(ped.assessment_philosophy)}\n\n"
		"Accessibility Requirements:\n"
		f"- Language Complexity: {value_or_placeholder(acc.language_complexity)}\n"
		f"- Cultural Inclusion: {joined(acc.cultural_inclusion)}\n"
		f"- Accessibility Needs: {joined(acc.accessibility_needs)}"
	)


def build_enriched_prompt(prompt_text: str, dna: EducationalDNA, style: Optional[str]) -> str:
	"""Style directive, then the educational context block, then the stored prompt verbatim."""
	directive = GENERATION_STYLES[resolve_style(style)]["directive"]
	return f"{directive}\n\n{educational_context_block(dna)}\n\n{prompt_text}"


def planned_sections(dna: EducationalDNA) -> List[SectionInput]:
	"""Sections declared in the wizard's content structure, in sequence order."""
	plans = sorted(dna.content_structure.content_sections, key=lambda p: p.sequence)
	return [SectionInput(title=p.title or PLACEHOLDER, description=p.description) for p in plans]
