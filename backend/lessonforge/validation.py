from __future__ import annotations
import logging

from pydantic import ValidationError

from .prompt_synthesizer import bullets, joined, objective_lines, value_or_placeholder
from .quality import extract_json
from .schemas import EducationalDNA, GenerationParameters, SectionInput, ValidationResult
from .settings import Settings

logger = logging.getLogger(__name__)

VALIDATION_TEMPERATURE = 0.2
VALIDATION_MAX_TOKENS = 3000


def validation_parameters(config: Settings) -> GenerationParameters:
	return GenerationParameters(
		model=config.default_model,
		max_tokens=VALIDATION_MAX_TOKENS,
		temperature=VALIDATION_TEMPERATURE,
	)


def build_validation_prompt(dna: EducationalDNA, section: SectionInput, content_text: str) -> str:
	ctx = dna.educational_context
	ped = dna.pedagogical_approach
	acc = dna.cultural_accessibility
	cfg = section.config
	return (
		"# Educational Content Validation\n\n"
		"## CONTENT TO VALIDATE\n"
		f"```\n{content_text}\n```\n\n"
		"## EVALUATION CRITERIA\n\n"
		"Evaluate the educational content above against these criteria:\n\n"
		"### EDUCATIONAL PARAMETERS\n"
		f"- Grade Level: {joined(ctx.grade_level)}\n"
		f"- Subject Area: {joined(ctx.subject_area)}\n"
		f"- Educational Standards: {joined(ctx.standards)}\n\n"
		"### LEARNING OBJECTIVES\n"
		f"{objective_lines(dna)}\n\n"
		"### PEDAGOGICAL APPROACH\n"
		f"- Teaching Methodology: {joined(ped.teaching_methodology)}\n"
		f"- Assessment Philosophy: {value_or_placeholder(ped.assessment_philosophy)}\n\n"
		"### SECTION REQUIREMENTS\n"
		f"## {value_or_placeholder(section.title)}\n"
		f"{value_or_placeholder(section.description)}\n\n"
		f"Learning Objectives:\n{bullets(cfg.learning_objectives)}\n\n"
		f"Activity Types:\n{bullets(cfg.activity_types)}\n\n"
		"### ACCESSIBILITY AND INCLUSION\n"
		f"- Language Complexity: {value_or_placeholder(acc.language_complexity)}\n"
		f"- Cultural Inclusion: {joined(acc.cultural_inclusion)}\n"
		f"- Accessibility Needs: {joined(acc.accessibility_needs)}\n\n"
		"## REQUIRED RESPONSE FORMAT\n"
		"Analyze the content and respond in JSON format with the following structure:\n"
		"```json\n"
		"{\n"
		'  "quality_score": [number between 1-10],\n'
		'  "standards_alignment_score": [number between 1-10],\n'
		'  "strengths": ["strength 1", "strength 2", "strength 3"],\n'
		'  "weaknesses": ["weakness 1", "weakness 2"],\n'
		'  "improvement_suggestions": "Detailed improvement suggestions paragraph"\n'
		"}\n"
		"```\n\n"
		"Ensure your response is formatted exactly as described above with valid JSON. "
		"The scores should be numeric values between 1 and 10, with 10 being highest quality.\n"
	)


def parse_validation_response(raw: str) -> ValidationResult:
	try:
		data = extract_json(raw)
		if not isinstance(data, dict):
			raise ValueError("Validation response is not a JSON object")
		return ValidationResult.model_validate(data)
	except (ValueError, ValidationError) as err:
		logger.error("Error parsing validation response: %s", err)
		return ValidationResult(
			quality_score=0,
			standards_alignment_score=0,
			improvement_suggestions="Error parsing validation results",
			strengths=[],
			weaknesses=["Unable to parse validation response"],
		)
