"""Process-scoped monitor state.

One MonitorState is created per run and handed by reference to each
component. Only the monitoring flow writes to it, so nothing is locked.
"""

from dataclasses import dataclass, field

from panewatch.core.capture import InMemoryCaptureHistory
from panewatch.core.models import ActivityStatus, PaneSnapshot
from panewatch.core.tracker import PaneStatusTracker


@dataclass
class MonitorState:
    tracker: PaneStatusTracker = field(default_factory=PaneStatusTracker)
    capture_history: InMemoryCaptureHistory = field(default_factory=InMemoryCaptureHistory)
    # Panes known to be cleared since they were last seen WORKING
    cleared: set[str] = field(default_factory=set)
    # Last discovered topology
    operator_pane: PaneSnapshot | None = None
    worker_panes: list[PaneSnapshot] = field(default_factory=list)
    # Activity per pane from the previous keepalive iteration
    last_activity: dict[str, ActivityStatus] = field(default_factory=dict)
    available_panes: set[str] = field(default_factory=set)
    # Last known title per pane (refreshed on discovery and on stamping)
    titles: dict[str, str] = field(default_factory=dict)
    cycles_completed: int = 0
    keepalive_iterations: int = 0

    def worker_ids(self) -> list[str]:
        return [pane.id for pane in self.worker_panes]
