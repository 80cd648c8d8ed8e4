"""Tests for the streaming generation session."""

import asyncio

import pytest

from starlette.websockets import WebSocketDisconnect

from conftest import FakeAssessor, FakeLLM
from lessonforge.exceptions import PersistenceError, RetryableLLMError
from lessonforge.models import ContentItem
from lessonforge.persistence import ContentStore
from lessonforge.prompt_synthesizer import GENERATION_STYLES
from lessonforge.streaming import GenerationSession, SessionState, estimate_progress


class Harness:
	"""Wires a session to an in-memory inbox and an event log."""

	def __init__(self, db_session, username, settings, llm, assessor=None):
		self.events = []
		self.inbox: asyncio.Queue = asyncio.Queue()
		self.assessor = assessor or FakeAssessor()
		self.session = GenerationSession(
			send=self.send,
			store=ContentStore(db_session, username, settings),
			llm=llm,
			assessor=self.assessor,
			config=settings,
		)
		self.on_event = None

	async def send(self, event):
		self.events.append(event)
		if self.on_event is not None:
			await self.on_event(event)

	async def receive(self):
		message = await self.inbox.get()
		if isinstance(message, Exception):
			raise message
		return message

	async def run(self, *messages, timeout=5):
		for message in messages:
			self.inbox.put_nowait(message)
		await asyncio.wait_for(self.session.run(self.receive), timeout=timeout)

	def of_type(self, kind):
		return [e for e in self.events if e["type"] == kind]


@pytest.mark.asyncio
async def test_events_arrive_in_order_and_content_is_saved(db_session, seeded, test_settings):
	llm = FakeLLM(["Plants ", "need ", "light."])
	h = Harness(db_session, seeded.username, test_settings, llm)

	await h.run({"promptId": seeded.prompt_id, "style": "conservative"})

	assert h.session.state == SessionState.COMPLETED
	assert [e["progress"] for e in h.of_type("progress")] == [5, 10, 15, 20]
	contents = h.of_type("content")
	assert [e["content"] for e in contents] == ["Plants ", "Plants need ", "Plants need light.", "Plants need light."]
	final = contents[-1]
	assert final["final"] is True
	assert final["progress"] == 100
	assert final["contentId"] == h.session.content_id
	assert h.events[-1] is final
	progress = [e["progress"] for e in h.events if "progress" in e]
	assert progress == sorted(progress)
	assert h.of_type("error") == []

	row = db_session.get(ContentItem, h.session.content_id)
	assert row.content_text == "Plants need light."
	assert row.is_approved is False
	assert row.metadata_["style"] == "conservative"
	assert row.metadata_["temperature"] == 0.3
	assert row.metadata_["model"] == "claude-test"


@pytest.mark.asyncio
async def test_final_prompt_is_enriched_with_style_and_context(db_session, seeded, test_settings):
	llm = FakeLLM(["ok"])
	h = Harness(db_session, seeded.username, test_settings, llm)

	await h.run({"promptId": seeded.prompt_id, "generationStyle": "creative", "model": "claude-override"})

	prompt = llm.prompts[0]
	assert prompt.startswith(GENERATION_STYLES["creative"]["directive"])
	assert "Educational Context:" in prompt
	assert prompt.endswith("Write a lesson introduction on photosynthesis.")
	assert llm.params[0].model == "claude-override"
	assert llm.params[0].temperature == 0.9
	assert llm.params[0].max_tokens == 1000


@pytest.mark.asyncio
async def test_at_most_one_quality_check_in_flight(db_session, seeded, test_settings):
	settings = test_settings.model_copy(update={"quality_check_interval": 1})
	assessor = FakeAssessor(gated=True)
	h = Harness(db_session, seeded.username, settings, FakeLLM(["a", "b", "c", "d", "e"]), assessor)

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.COMPLETED
	assert len(assessor.calls) == 1
	assert assessor.max_active == 1
	assert assessor.calls[0] == "a"


@pytest.mark.asyncio
async def test_quality_checks_resume_after_previous_finishes(db_session, seeded, test_settings):
	settings = test_settings.model_copy(update={"quality_check_interval": 2})
	assessor = FakeAssessor()
	h = Harness(db_session, seeded.username, settings, FakeLLM(["a", "b", "c", "d", "e", "f"]), assessor)

	await h.run({"promptId": seeded.prompt_id})

	assert assessor.max_active == 1
	assert len(assessor.calls) >= 2
	quality = h.of_type("quality")
	assert quality
	assert set(quality[0]["indicators"]) == {
		"standards_alignment", "reading_level", "pedagogical_alignment", "accessibility", "cultural_sensitivity",
	}


@pytest.mark.asyncio
async def test_final_quality_check_is_stored(db_session, seeded, test_settings):
	settings = test_settings.model_copy(update={"final_quality_check": True})
	assessor = FakeAssessor()
	h = Harness(db_session, seeded.username, settings, FakeLLM(["Full ", "lesson"]), assessor)

	await h.run({"promptId": seeded.prompt_id})

	assert assessor.calls == ["Full lesson"]
	assert h.events[-1]["type"] == "quality"
	row = db_session.get(ContentItem, h.session.content_id)
	db_session.refresh(row)
	assert row.metadata_["quality_metrics"]["accessibility"] == 7.0


@pytest.mark.asyncio
async def test_cancel_stops_events_and_keeps_partial_text_out(db_session, seeded, test_settings):
	llm = FakeLLM(["partial "], hang_after=1)
	h = Harness(db_session, seeded.username, test_settings, llm)

	async def cancel_on_first_chunk(event):
		if event["type"] == "content":
			h.inbox.put_nowait({"type": "cancel"})

	h.on_event = cancel_on_first_chunk

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.CANCELLED
	assert h.events[-1] == {"type": "info", "message": "Generation cancelled by user"}
	assert len(h.of_type("content")) == 1
	assert all(not e.get("final") for e in h.of_type("content"))
	row = db_session.get(ContentItem, h.session.content_id)
	assert row.content_text == ""


@pytest.mark.asyncio
async def test_cancel_after_final_event_keeps_saved_text(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM(["Plants ", "need light."]))

	async def cancel_on_final(event):
		if event.get("final"):
			h.inbox.put_nowait({"type": "cancel"})

	h.on_event = cancel_on_final

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.COMPLETED
	assert all(e["message"] == "No generation in progress" for e in h.of_type("info"))
	row = db_session.get(ContentItem, h.session.content_id)
	db_session.refresh(row)
	assert row.content_text == "Plants need light."


@pytest.mark.asyncio
async def test_cancel_during_final_quality_check_leaves_session_completed(db_session, seeded, test_settings):
	settings = test_settings.model_copy(update={"final_quality_check": True})
	assessor = FakeAssessor(gated=True)
	h = Harness(db_session, seeded.username, settings, FakeLLM(["Full ", "lesson"]), assessor)

	async def on_event(event):
		if event.get("final"):
			h.inbox.put_nowait({"type": "cancel"})
		elif event["type"] == "info":
			assessor.release.set()

	h.on_event = on_event

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.COMPLETED
	assert h.of_type("info") == [{"type": "info", "message": "No generation in progress"}]
	assert h.events[-1]["type"] == "quality"
	row = db_session.get(ContentItem, h.session.content_id)
	db_session.refresh(row)
	assert row.content_text == "Full lesson"
	assert "quality_metrics" in row.metadata_


@pytest.mark.asyncio
async def test_disconnect_after_final_event_still_saves(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM(["Plants ", "need light."]))

	async def disconnect_on_final(event):
		if event.get("final"):
			h.inbox.put_nowait(WebSocketDisconnect(1000))

	h.on_event = disconnect_on_final

	with pytest.raises(WebSocketDisconnect):
		await h.run({"promptId": seeded.prompt_id})

	assert h.session.state in (SessionState.FINALIZING, SessionState.COMPLETED)
	row = db_session.get(ContentItem, h.session.content_id)
	db_session.refresh(row)
	assert row.content_text == "Plants need light."


@pytest.mark.asyncio
async def test_failed_save_is_reported_after_final_event(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM(["Plants ", "need light."]))

	def failing_upsert(*args, **kwargs):
		raise PersistenceError("database is locked")

	h.session.store.upsert_content = failing_upsert

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.FAILED
	assert h.events[-2]["type"] == "content"
	assert h.events[-2]["final"] is True
	assert h.events[-1] == {"type": "error", "message": "Failed to save generated content: database is locked"}
	assert len(h.of_type("error")) == 1


@pytest.mark.asyncio
async def test_cancel_without_generation_is_acknowledged(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM([]))

	await h.session.handle_message({"type": "cancel"})

	assert h.events == [{"type": "info", "message": "No generation in progress"}]
	assert h.session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_missing_prompt_fails_with_one_error(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM(["never"]))

	await h.run({"promptId": "no-such-prompt"})

	assert h.session.state == SessionState.FAILED
	assert h.of_type("error") == [{"type": "error", "message": "Prompt not found"}]
	assert h.of_type("content") == []
	assert db_session.query(ContentItem).count() == 0


@pytest.mark.asyncio
async def test_prompt_of_another_user_is_not_found(db_session, seeded, test_settings):
	h = Harness(db_session, "mallory", test_settings, FakeLLM(["never"]))

	await h.run({"promptId": seeded.prompt_id})

	assert h.of_type("error") == [{"type": "error", "message": "Prompt not found"}]


@pytest.mark.asyncio
async def test_missing_prompt_id_keeps_session_idle(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM([]))

	await h.session.handle_message({"style": "creative"})

	assert h.events == [{"type": "error", "message": "promptId is required"}]
	assert h.session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_upstream_failure_mid_stream(db_session, seeded, test_settings):
	llm = FakeLLM(["half a lesson"], error=RetryableLLMError("Claude API error: 529 overloaded"))
	h = Harness(db_session, seeded.username, test_settings, llm)

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.FAILED
	assert h.events[-1] == {"type": "error", "message": "Claude API error: 529 overloaded"}
	assert all(not e.get("final") for e in h.of_type("content"))


@pytest.mark.asyncio
async def test_empty_stream_is_an_error(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM([]))

	await h.run({"promptId": seeded.prompt_id})

	assert h.session.state == SessionState.FAILED
	assert h.of_type("error") == [{"type": "error", "message": "Empty content returned from Claude API"}]


@pytest.mark.asyncio
async def test_second_request_while_busy_is_rejected(db_session, seeded, test_settings):
	llm = FakeLLM(["slow "], hang_after=1)
	h = Harness(db_session, seeded.username, test_settings, llm)

	async def on_event(event):
		if event["type"] == "content":
			h.inbox.put_nowait({"promptId": seeded.prompt_id})
			h.inbox.put_nowait({"type": "cancel"})
			h.on_event = None

	h.on_event = on_event

	await h.run({"promptId": seeded.prompt_id})

	assert {"type": "error", "message": "Generation already in progress"} in h.events
	assert len(llm.prompts) == 1


@pytest.mark.asyncio
async def test_idle_session_times_out(db_session, seeded, test_settings):
	settings = test_settings.model_copy(update={"session_idle_timeout_seconds": 0.05})
	h = Harness(db_session, seeded.username, settings, FakeLLM([]))

	await h.run()

	assert h.session.state == SessionState.FAILED
	assert h.events == [{"type": "error", "message": "Session idle timeout"}]


@pytest.mark.asyncio
async def test_malformed_message_is_reported(db_session, seeded, test_settings):
	h = Harness(db_session, seeded.username, test_settings, FakeLLM([]))

	await h.session.handle_message(["not", "an", "object"])

	assert h.events[0]["type"] == "error"
	assert h.events[0]["message"].startswith("Error processing message")


def test_estimate_progress_is_bounded():
	assert estimate_progress(0, 1000) == 20
	assert estimate_progress(2000, 1000) == 57
	assert estimate_progress(10 ** 6, 1000) == 95
