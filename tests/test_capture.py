"""Tests for capture-diff activity detection."""

import asyncio

import pytest
from conftest import FakeBackend

from panewatch.core.capture import (
    CaptureChangeDetector,
    CaptureFetchError,
    CaptureValidationError,
    ContentMarkers,
    InMemoryCaptureHistory,
    analyze_input_field,
    map_activity,
)
from panewatch.core.models import ActivityStatus, InputFieldStatus, WorkerStatus

EMPTY_PROMPT = "some output\n╭──────────╮\n│ >        │\n╰──────────╯"
TYPED_PROMPT = "some output\n╭──────────╮\n│ > fix it │\n╰──────────╯"


@pytest.fixture
def fake() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def detector(fake) -> CaptureChangeDetector:
    return CaptureChangeDetector(fake)


class TestInputField:
    def test_empty_prompt(self):
        assert analyze_input_field(EMPTY_PROMPT.split("\n")) == InputFieldStatus.EMPTY

    def test_prompt_with_input(self):
        assert analyze_input_field(TYPED_PROMPT.split("\n")) == InputFieldStatus.HAS_INPUT

    def test_no_box(self):
        assert analyze_input_field(["a", "b", "c"]) == InputFieldStatus.NO_INPUT_FIELD

    def test_fewer_than_three_lines(self):
        assert analyze_input_field(["╭──╮", "│ > │"]) == InputFieldStatus.NO_INPUT_FIELD

    def test_bottom_box_wins(self):
        lines = TYPED_PROMPT.split("\n") + EMPTY_PROMPT.split("\n")
        assert analyze_input_field(lines) == InputFieldStatus.EMPTY

    def test_parse_error(self):
        assert analyze_input_field([None, None, None]) == InputFieldStatus.PARSE_ERROR


class TestStatusMapping:
    def _context(self, content, hints=None):
        return ContentMarkers().build_context(content, hints)

    def test_not_evaluated_is_unknown(self):
        status, reasoning = map_activity(ActivityStatus.NOT_EVALUATED, self._context("x"))
        assert status == WorkerStatus.UNKNOWN
        assert "activity not evaluated" in reasoning

    def test_idle_with_completion_marker_is_done(self):
        status, reasoning = map_activity(ActivityStatus.IDLE, self._context("Task completed"))
        assert status == WorkerStatus.DONE
        assert reasoning[-1] == "completion marker detected: completed"

    def test_idle_with_error_marker_is_terminated(self):
        status, _ = map_activity(ActivityStatus.IDLE, self._context("Traceback: exception"))
        assert status == WorkerStatus.TERMINATED

    def test_idle_plain(self):
        status, reasoning = map_activity(ActivityStatus.IDLE, self._context("> "))
        assert status == WorkerStatus.IDLE
        assert "content unchanged" in reasoning

    def test_working_with_block_marker_is_blocked(self):
        status, _ = map_activity(ActivityStatus.WORKING, self._context("Waiting for input"))
        assert status == WorkerStatus.BLOCKED

    def test_working_plain(self):
        status, _ = map_activity(ActivityStatus.WORKING, self._context("compiling"))
        assert status == WorkerStatus.WORKING

    def test_hints_recorded_in_reasoning(self):
        context = self._context("x", ["worker1", "claude", "node"])
        _, reasoning = map_activity(ActivityStatus.IDLE, context)
        assert reasoning[0] == "title hint: worker1"
        assert reasoning[1] == "command hints: claude, node"


class TestDetectChanges:
    def test_first_observation_is_baseline(self, fake, detector):
        fake.script("%1", "hello")
        result = asyncio.run(detector.detect_changes("%1"))
        assert result.activity == ActivityStatus.NOT_EVALUATED
        assert result.has_content_changed is False
        assert result.status == WorkerStatus.UNKNOWN

    def test_identical_content_is_idle(self, fake, detector):
        fake.script("%1", "hello", "hello")

        async def run():
            await detector.detect_changes("%1")
            return await detector.detect_changes("%1")

        result = asyncio.run(run())
        assert result.activity == ActivityStatus.IDLE
        assert result.has_content_changed is False
        assert result.previous_content == "hello"

    def test_changed_content_is_working(self, fake, detector):
        fake.script("%1", "hello", "hello world")

        async def run():
            await detector.detect_changes("%1")
            return await detector.detect_changes("%1")

        result = asyncio.run(run())
        assert result.activity == ActivityStatus.WORKING
        assert result.has_content_changed is True
        assert result.status == WorkerStatus.WORKING

    def test_available_for_new_task(self, fake, detector):
        fake.script("%1", EMPTY_PROMPT, EMPTY_PROMPT)

        async def run():
            await detector.detect_changes("%1")
            return await detector.detect_changes("%1")

        result = asyncio.run(run())
        assert result.input_field == InputFieldStatus.EMPTY
        assert result.is_available_for_new_task

    def test_empty_pane_id_rejected(self, detector):
        with pytest.raises(CaptureValidationError):
            asyncio.run(detector.detect_changes(""))

    def test_fetch_failure(self, fake, detector):
        fake.failing_panes.add("%1")
        with pytest.raises(CaptureFetchError):
            asyncio.run(detector.detect_changes("%1"))
        assert "%1" not in detector.history

    def test_empty_content_still_overwrites_history(self, fake, detector):
        detector.history.store("%1", "old")
        fake.script("%1", "   ")
        with pytest.raises(CaptureValidationError):
            asyncio.run(detector.detect_changes("%1"))
        assert detector.history.get("%1") == "   "


class TestDetectMany:
    def test_one_failure_does_not_abort_others(self, fake, detector):
        fake.script("%1", "a")
        fake.script("%2", "b")
        fake.failing_panes.add("%3")

        batch = asyncio.run(detector.detect_many(["%1", "%2", "%3"]))

        assert set(batch.results) == {"%1", "%2"}
        assert set(batch.errors) == {"%3"}
        assert batch.ok is False

    def test_all_succeed(self, fake, detector):
        fake.script("%1", "a")
        batch = asyncio.run(detector.detect_many(["%1"], {"%1": ["title", "claude"]}))
        assert batch.ok
        assert batch.results["%1"].reasoning[0] == "title hint: title"


class TestHistory:
    def test_clear_one_and_all(self):
        history = InMemoryCaptureHistory()
        history.store("%1", "a")
        history.store("%2", "b")

        history.clear("%1")
        assert "%1" not in history
        assert len(history) == 1

        history.clear()
        assert len(history) == 0
