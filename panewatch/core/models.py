"""Data models for the pane monitor.

Pane snapshots are Pydantic models validated at the backend boundary.
Per-cycle results are plain dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class WorkerStatus(str, Enum):
    """Lifecycle state assigned to a worker pane."""

    IDLE = "idle"
    WORKING = "working"
    BLOCKED = "blocked"
    DONE = "done"
    TERMINATED = "terminated"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Uppercase token used in titles and reports."""
        return self.name


class ActivityStatus(str, Enum):
    """Whether pane content changed between two observations."""

    WORKING = "working"
    IDLE = "idle"
    NOT_EVALUATED = "not_evaluated"


class InputFieldStatus(str, Enum):
    """State of the boxed prompt at the bottom of an assistant pane."""

    EMPTY = "empty"
    HAS_INPUT = "has_input"
    NO_INPUT_FIELD = "no_input_field"
    PARSE_ERROR = "parse_error"


class ClearState(str, Enum):
    """Per-pane clear/recovery state."""

    NOT_CLEARED = "not_cleared"
    CLEAR_SENT = "clear_sent"
    VERIFYING = "verifying"
    CLEARED_CONFIRMED = "cleared_confirmed"
    RECOVERY_ATTEMPTED = "recovery_attempted"


class ClearVerdict(str, Enum):
    """Outcome of comparing captured content with the cleared signature."""

    CLEARED = "cleared"
    DUPLICATE_CLEAR_TOKEN = "duplicate_clear_token"
    MISSING_NO_CONTENT_MARKER = "missing_no_content_marker"
    NOT_CLEARED = "not_cleared"


class TerminationReason(str, Enum):
    """Why a monitoring entry point returned."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RUNTIME_EXCEEDED = "runtime_exceeded"
    DISCOVERY_FAILED = "discovery_failed"
    ERROR = "error"


class SchedulerPhase(str, Enum):
    """Phase the monitoring scheduler is currently in."""

    IDLE = "idle"
    WAITING_FOR_SCHEDULE = "waiting_for_schedule"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    REPORTING = "reporting"
    KEEPALIVE_CYCLING = "keepalive_cycling"
    CLEAR_RECOVERY = "clear_recovery"
    TERMINATED = "terminated"


# --- Pane Models ---


class PaneSnapshot(BaseModel):
    """Raw pane attributes as reported by the multiplexer.

    Rebuilt on every discovery, never patched in place.
    """

    id: str  # e.g., "%3"
    is_active: bool = False
    command: str = ""
    title: str = ""
    is_dead: bool = False
    index: int | None = None


@dataclass
class StatusRecord:
    """Current and (after a real transition) previous status of one pane."""

    current: WorkerStatus
    previous: WorkerStatus | None = None

    @property
    def has_changed(self) -> bool:
        return self.previous is not None


@dataclass
class CaptureDetectionResult:
    """Outcome of one capture-diff pass over a pane."""

    pane_id: str
    content: str
    lines: list[str]
    activity: ActivityStatus
    input_field: InputFieldStatus
    status: WorkerStatus
    reasoning: list[str] = field(default_factory=list)
    previous_content: str | None = None
    has_content_changed: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_available_for_new_task(self) -> bool:
        """Idle pane whose prompt is empty."""
        return (
            self.activity == ActivityStatus.IDLE and self.input_field == InputFieldStatus.EMPTY
        )


@dataclass
class ClearOutcome:
    """Result of driving one pane through the clear state machine."""

    pane_id: str
    state: ClearState
    verdict: ClearVerdict | None = None
    final_verdict: ClearVerdict | None = None
    recovery_attempted: bool = False
    error: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.state == ClearState.CLEARED_CONFIRMED


@dataclass
class CycleResult:
    """Summary of one full monitoring cycle."""

    cycle: int
    panes_processed: int = 0
    status_changes: list[str] = field(default_factory=list)
    newly_idle_or_done: list[str] = field(default_factory=list)
    clear_outcomes: list[ClearOutcome] = field(default_factory=list)
    keepalives_sent: int = 0
    report_sent: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def cleared_count(self) -> int:
        return sum(1 for outcome in self.clear_outcomes if outcome.confirmed)


class MonitorStats(BaseModel):
    """Diagnostics snapshot: counts by status and role."""

    total: int = 0
    operator: int = 0
    workers: int = 0
    by_status: dict[WorkerStatus, int] = Field(default_factory=dict)
    cleared: int = 0
    cycles: int = 0
    available_for_task: int = 0
    phase: SchedulerPhase = SchedulerPhase.IDLE

    def count(self, status: WorkerStatus) -> int:
        return self.by_status.get(status, 0)
