"""Tests for pipeline stage gating."""

import pytest

from conftest import seed_project
from lessonforge.exceptions import StageBlockedError
from lessonforge.pipeline import COMPLETE, advance_project, completed_stages, stage_issues
from lessonforge.persistence import ContentStore
from lessonforge.schemas import ValidationResult


@pytest.fixture
def store(db_session, seeded, test_settings) -> ContentStore:
	return ContentStore(db_session, seeded.username, test_settings)


def test_project_without_type_cannot_leave_configuration(db_session, test_settings):
	seeded = seed_project(db_session, username="carol", dna={})
	store = ContentStore(db_session, "carol", test_settings)
	project = store.get_project(seeded.project_id)

	with pytest.raises(StageBlockedError) as exc_info:
		advance_project(store, project)

	assert exc_info.value.stage == "project_config"
	assert exc_info.value.issues == ["Project type is not configured"]
	assert project.pipeline_status == "project_config"


def test_advance_moves_one_stage_and_updates_completion(store, seeded):
	project = store.get_project(seeded.project_id)

	advance_project(store, project)

	assert project.pipeline_status == "outline_context"
	assert project.completion_percentage == 17
	assert completed_stages(project.pipeline_status) == ["project_config"]


def test_prompts_stage_requires_approval(store, seeded):
	project = store.get_project(seeded.project_id)
	project.pipeline_status = "claude_prompts"

	assert stage_issues(store, project, "claude_prompts") == ["Prompt for section 'Introduction' is not approved"]

	store.set_approval(store.get_prompt(seeded.prompt_id), True)

	assert stage_issues(store, project, "claude_prompts") == []


def test_full_walk_reaches_complete(store, seeded):
	project = store.get_project(seeded.project_id)
	store.set_approval(store.get_prompt(seeded.prompt_id), True)
	content = store.upsert_content(seeded.prompt_id, "Lesson text", approved=True)
	store.upsert_validation(content.id, ValidationResult(quality_score=8.0, standards_alignment_score=8.0))

	for _ in range(6):
		advance_project(store, project)

	assert project.pipeline_status == COMPLETE
	assert project.completion_percentage == 100
	with pytest.raises(StageBlockedError):
		advance_project(store, project)


def test_unvalidated_content_blocks_validation_stage(store, seeded):
	project = store.get_project(seeded.project_id)
	store.upsert_content(seeded.prompt_id, "Lesson text", approved=True)

	assert stage_issues(store, project, "validation") == ["Content for section 'Introduction' has not been validated"]
