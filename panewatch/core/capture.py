"""Capture-diff activity detection.

Compares successive captures of each pane, inspects the assistant's boxed
input field, and maps the result to a WorkerStatus with a reasoning trail.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field

from panewatch.core.backend import PaneBackend
from panewatch.core.models import (
    ActivityStatus,
    CaptureDetectionResult,
    InputFieldStatus,
    WorkerStatus,
)

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Capture-diff detection failed for a pane."""

    def __init__(self, message: str, pane_id: str | None = None):
        super().__init__(message)
        self.pane_id = pane_id


class CaptureValidationError(CaptureError):
    """Pane id or captured content is empty or malformed."""

    pass


class CaptureFetchError(CaptureError):
    """The backend could not capture the pane."""

    pass


class InMemoryCaptureHistory:
    """Last observed content per pane id, kept for the process lifetime."""

    def __init__(self):
        self._content: dict[str, str] = {}

    def get(self, pane_id: str) -> str | None:
        return self._content.get(pane_id)

    def store(self, pane_id: str, content: str) -> None:
        self._content[pane_id] = content

    def clear(self, pane_id: str | None = None) -> None:
        """Forget one pane, or every pane when pane_id is None."""
        if pane_id is None:
            self._content.clear()
        else:
            self._content.pop(pane_id, None)

    def __len__(self) -> int:
        return len(self._content)

    def __contains__(self, pane_id: object) -> bool:
        return pane_id in self._content


# --- Input field parsing ---


def _is_box_top(line: str) -> bool:
    return line.startswith("╭") and "─" in line


def _is_box_middle(line: str) -> bool:
    return line.startswith("│") and line.endswith("│")


def _is_box_bottom(line: str) -> bool:
    return line.startswith("╰") and "─" in line


def analyze_input_field(lines: list[str]) -> InputFieldStatus:
    """Classify the boxed prompt nearest the bottom of the capture.

    The prompt is three consecutive lines::

        ╭──────╮
        │ >    │
        ╰──────╯

    A box holding only ``>`` is EMPTY, ``>`` followed by text is HAS_INPUT.
    """
    try:
        stripped = [line.strip() for line in lines]
        if len(stripped) < 3:
            return InputFieldStatus.NO_INPUT_FIELD

        for i in range(len(stripped) - 3, -1, -1):
            top, middle, bottom = stripped[i : i + 3]
            if not (_is_box_top(top) and _is_box_middle(middle) and _is_box_bottom(bottom)):
                continue
            inner = middle[1:-1].strip()
            if inner == ">":
                return InputFieldStatus.EMPTY
            if inner.startswith(">"):
                return InputFieldStatus.HAS_INPUT
        return InputFieldStatus.NO_INPUT_FIELD
    except Exception as e:
        logger.debug(f"Input field parse failed: {e}")
        return InputFieldStatus.PARSE_ERROR


# --- Status mapping ---


@dataclass
class StatusContext:
    """Content markers and hints that refine an activity into a status."""

    completion_marker: str | None = None
    error_marker: str | None = None
    block_marker: str | None = None
    title_hint: str | None = None
    command_hints: list[str] = field(default_factory=list)


class ContentMarkers:
    """Marker patterns searched in lowercased pane content, checked in order."""

    COMPLETION_PATTERNS = [r"completed?", r"finished?", r"done", r"success", r"✓", r"完了", r"終了"]
    ERROR_PATTERNS = [r"error", r"failed?", r"exception", r"✗", r"❌", r"エラー", r"失敗", r"例外"]
    BLOCK_PATTERNS = [r"waiting", r"pending", r"blocked", r"paused", r"待機", r"停止", r"ブロック"]

    @staticmethod
    def _first(patterns: list[str], text: str) -> str | None:
        for pattern in patterns:
            match = re.search(pattern, text)
            if match:
                return match.group(0)
        return None

    def build_context(self, content: str, hints: list[str] | None = None) -> StatusContext:
        text = content.lower()
        hints = hints or []
        return StatusContext(
            completion_marker=self._first(self.COMPLETION_PATTERNS, text),
            error_marker=self._first(self.ERROR_PATTERNS, text),
            block_marker=self._first(self.BLOCK_PATTERNS, text),
            title_hint=hints[0] if hints else None,
            command_hints=list(hints[1:]),
        )


def combine_activity(
    previous: str | None, current: str, input_field: InputFieldStatus
) -> ActivityStatus:
    """Activity from the diff; an unparseable prompt is never evaluated."""
    if input_field == InputFieldStatus.PARSE_ERROR or previous is None:
        return ActivityStatus.NOT_EVALUATED
    return ActivityStatus.WORKING if current != previous else ActivityStatus.IDLE


def map_activity(
    activity: ActivityStatus, context: StatusContext
) -> tuple[WorkerStatus, list[str]]:
    """Map activity plus content markers to a status and its reasoning trail."""
    reasoning: list[str] = []
    if context.title_hint:
        reasoning.append(f"title hint: {context.title_hint}")
    if context.command_hints:
        reasoning.append(f"command hints: {', '.join(context.command_hints)}")

    if activity == ActivityStatus.NOT_EVALUATED:
        reasoning.append("activity not evaluated")
        return WorkerStatus.UNKNOWN, reasoning

    if activity == ActivityStatus.IDLE:
        reasoning.append("content unchanged")
        if context.completion_marker:
            reasoning.append(f"completion marker detected: {context.completion_marker}")
            return WorkerStatus.DONE, reasoning
        if context.error_marker:
            reasoning.append(f"error marker detected: {context.error_marker}")
            return WorkerStatus.TERMINATED, reasoning
        return WorkerStatus.IDLE, reasoning

    reasoning.append("content changed")
    if context.block_marker:
        reasoning.append(f"block marker detected: {context.block_marker}")
        return WorkerStatus.BLOCKED, reasoning
    return WorkerStatus.WORKING, reasoning


# --- Detector ---


@dataclass
class BatchDetectionResult:
    """Per-pane results and failures of one concurrent capture pass."""

    results: dict[str, CaptureDetectionResult] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class CaptureChangeDetector:
    """Detect pane activity by diffing captures against the stored history."""

    def __init__(
        self,
        backend: PaneBackend,
        history: InMemoryCaptureHistory | None = None,
        capture_lines: int = 50,
    ):
        self.backend = backend
        self.history = history if history is not None else InMemoryCaptureHistory()
        self.capture_lines = capture_lines
        self.markers = ContentMarkers()

    async def detect_changes(
        self, pane_id: str, context_hints: list[str] | None = None
    ) -> CaptureDetectionResult:
        """Run the capture-diff pipeline for one pane.

        The captured content is stored as the new baseline even when a later
        step fails.

        Raises:
            CaptureValidationError: Empty pane id or whitespace-only content
            CaptureFetchError: The backend could not capture the pane
        """
        if not isinstance(pane_id, str) or not pane_id.strip():
            raise CaptureValidationError("Pane id must be a non-empty string", pane_id)

        try:
            content = await self.backend.get_content(pane_id, self.capture_lines)
        except Exception as e:
            raise CaptureFetchError(f"Failed to capture pane {pane_id}: {e}", pane_id) from e

        previous = self.history.get(pane_id)
        try:
            if not content or not content.strip():
                raise CaptureValidationError(f"Pane {pane_id} returned empty content", pane_id)

            lines = content.split("\n")
            input_field = analyze_input_field(lines)
            activity = combine_activity(previous, content, input_field)
            context = self.markers.build_context(content, context_hints)
            status, reasoning = map_activity(activity, context)
        finally:
            self.history.store(pane_id, content if isinstance(content, str) else "")

        if input_field != InputFieldStatus.NO_INPUT_FIELD:
            reasoning.append(f"input field: {input_field.value}")
        logger.debug(f"Pane {pane_id}: {status.label} ({'; '.join(reasoning)})")

        return CaptureDetectionResult(
            pane_id=pane_id,
            content=content,
            lines=lines,
            activity=activity,
            input_field=input_field,
            status=status,
            reasoning=reasoning,
            previous_content=previous,
            has_content_changed=previous is not None and previous != content,
        )

    async def detect_many(
        self,
        pane_ids: list[str],
        hints: dict[str, list[str]] | None = None,
    ) -> BatchDetectionResult:
        """Detect every pane concurrently; one failure never aborts the rest."""
        hints = hints or {}
        outcomes = await asyncio.gather(
            *(self.detect_changes(pane_id, hints.get(pane_id)) for pane_id in pane_ids),
            return_exceptions=True,
        )

        batch = BatchDetectionResult()
        for pane_id, outcome in zip(pane_ids, outcomes):
            if isinstance(outcome, CaptureDetectionResult):
                batch.results[pane_id] = outcome
            else:
                logger.warning(f"Capture detection failed for pane {pane_id}: {outcome}")
                batch.errors[pane_id] = str(outcome)
        return batch

    def clear_pane_history(self, pane_id: str) -> None:
        self.history.clear(pane_id)
