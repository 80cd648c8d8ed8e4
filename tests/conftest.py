"""Pytest configuration and shared fixtures."""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lessonforge.db import Base
from lessonforge.models import AuthUser, Outline, Project, Prompt, Section
from lessonforge.schemas import QualityIndicators
from lessonforge.settings import Settings


SAMPLE_DNA = {
	"projectType": "lesson_plan",
	"educationalContext": {
		"gradeLevel": ["Grade 7"],
		"subjectArea": ["Life Science"],
		"standards": ["NGSS MS-LS1-6"],
	},
	"learningObjectives": [
		{"text": "Explain how plants convert light into chemical energy", "bloomsLevel": "understand"},
	],
	"pedagogicalApproach": {
		"teachingMethodology": ["Inquiry-based learning"],
		"assessmentPhilosophy": "Frequent formative checks",
		"differentiationStrategies": ["Tiered worksheets"],
	},
	"culturalAccessibility": {
		"languageComplexity": "Moderate",
		"culturalInclusion": ["Local farming examples"],
		"accessibilityNeeds": ["Screen reader friendly"],
	},
}


@pytest.fixture
def test_settings() -> Settings:
	"""Settings with a fake API key and no .env lookup."""
	return Settings(
		_env_file=None,
		ANTHROPIC_API_KEY="test-key",
		ANTHROPIC_BASE_URL="https://llm.test",
		LLM_MAX_RETRIES=3,
		LLM_RETRY_BASE_DELAY=1.0,
		QUALITY_CHECK_INTERVAL=10,
		FINAL_QUALITY_CHECK=False,
		SESSION_IDLE_TIMEOUT_SECONDS=5,
	)


@pytest.fixture
def db_session():
	"""In-memory SQLite session shared across threads."""
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	Base.metadata.create_all(bind=engine)
	TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
	session = TestingSession()
	try:
		yield session
	finally:
		session.close()
		engine.dispose()


@dataclass
class Seeded:
	username: str
	project_id: str
	outline_id: str
	section_id: str
	prompt_id: str


def seed_project(db, username: str = "alice", dna: Optional[dict] = None) -> Seeded:
	if db.get(AuthUser, username) is None:
		db.add(AuthUser(username=username, password_hash="x", requests_limit=100))
	project = Project(owner=username, title="Photosynthesis", config_dna=dna if dna is not None else SAMPLE_DNA)
	db.add(project)
	db.flush()
	outline = Outline(project_id=project.id, structure={"summary": "How plants make food", "keyTopics": ["Light", "Chlorophyll"]})
	db.add(outline)
	db.flush()
	section = Section(
		outline_id=outline.id,
		title="Introduction",
		description="Why plants need sunlight",
		order_index=0,
		config={"learningObjectives": ["Name the inputs of photosynthesis"], "activityTypes": ["Think-pair-share"]},
	)
	db.add(section)
	db.flush()
	prompt = Prompt(
		section_id=section.id,
		prompt_text="Write a lesson introduction on photosynthesis.",
		parameters={"model": "claude-test", "max_tokens": 1000, "temperature": 0.7},
		is_generated=True,
	)
	db.add(prompt)
	db.commit()
	return Seeded(username, project.id, outline.id, section.id, prompt.id)


@pytest.fixture
def seeded(db_session) -> Seeded:
	return seed_project(db_session)


def make_indicators(score: float = 7.0) -> QualityIndicators:
	return QualityIndicators(
		standards_alignment=score,
		reading_level={"score": score, "level": "Grade 7"},
		pedagogical_alignment=score,
		accessibility=score,
		cultural_sensitivity=score,
	)


class FakeLLM:
	"""Streams a fixed list of chunks; optionally blocks after a given chunk."""

	def __init__(self, chunks: List[str], hang_after: Optional[int] = None, error: Optional[Exception] = None):
		self.chunks = chunks
		self.hang_after = hang_after
		self.error = error
		self.prompts: List[str] = []
		self.params = []

	async def stream(self, prompt, params):
		self.prompts.append(prompt)
		self.params.append(params)
		for i, chunk in enumerate(self.chunks):
			await asyncio.sleep(0)
			yield chunk
			if self.hang_after is not None and i + 1 >= self.hang_after:
				await asyncio.Event().wait()
		if self.error is not None:
			raise self.error

	async def generate(self, prompt, params):
		return '{"standards_alignment": 7, "reading_level": {"score": 6, "level": "Grade 7"}, "pedagogical_alignment": 8, "accessibility": 7, "cultural_sensitivity": 9}'


class FakeAssessor:
	"""Records calls and how many ran at the same time. Blocks until released when gated."""

	def __init__(self, gated: bool = False):
		self.calls: List[str] = []
		self.active = 0
		self.max_active = 0
		self.release = asyncio.Event()
		if not gated:
			self.release.set()

	async def assess(self, text):
		self.calls.append(text)
		self.active += 1
		self.max_active = max(self.max_active, self.active)
		try:
			await self.release.wait()
		finally:
			self.active -= 1
		return make_indicators()
