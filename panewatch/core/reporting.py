"""Operator-facing status reports."""

import asyncio
import logging
from datetime import datetime

from panewatch.core.backend import PaneBackend
from panewatch.core.config import MESSAGE_DELAY
from panewatch.core.models import ActivityStatus, CycleResult, WorkerStatus
from panewatch.core.tracker import PaneStatusTracker

logger = logging.getLogger(__name__)

# Always listed, even when empty
REPORTED_STATUSES = [WorkerStatus.WORKING, WorkerStatus.IDLE, WorkerStatus.DONE]


def _pane_list(pane_ids: list[str]) -> str:
    return ", ".join(sorted(pane_ids)) if pane_ids else "-"


class StatusReporter:
    """Compose reports and deliver them to the operator pane."""

    def __init__(self, backend: PaneBackend, message_delay: float = MESSAGE_DELAY):
        self.backend = backend
        self.message_delay = message_delay

    def compose_cycle_report(
        self,
        result: CycleResult,
        tracker: PaneStatusTracker,
        worker_ids: list[str],
        available: list[str] | None = None,
        now: datetime | None = None,
    ) -> str:
        """One consolidated report for a full monitoring cycle."""
        now = now or datetime.now()
        lines = [f"[panewatch {now:%Y-%m-%d %H:%M:%S}] Cycle {result.cycle} status report"]

        if result.cleared_count:
            lines.append(f"Cleared {result.cleared_count} IDLE/DONE panes")
        if result.status_changes:
            lines.append(f"{len(result.status_changes)} pane status changes detected")

        lines.append(f"Current status: total {len(worker_ids)} panes")
        by_status: dict[WorkerStatus, list[str]] = {status: [] for status in WorkerStatus}
        for pane_id in worker_ids:
            status = tracker.get_status(pane_id)
            if status is not None:
                by_status[status].append(pane_id)
        for status in WorkerStatus:
            pane_ids = by_status[status]
            if pane_ids or status in REPORTED_STATUSES:
                lines.append(f"  {status.label} ({len(pane_ids)}): {_pane_list(pane_ids)}")

        if available is not None:
            lines.append(f"Available for tasks: {_pane_list(available)}")
        if result.errors:
            lines.append(f"Errors on {len(result.errors)} panes: {_pane_list(list(result.errors))}")
        return "\n".join(lines)

    def compose_activity_report(
        self,
        changes: dict[str, tuple[ActivityStatus | None, ActivityStatus]],
        now: datetime | None = None,
    ) -> str:
        """Short report listing panes whose activity flipped."""
        now = now or datetime.now()
        lines = [f"[panewatch {now:%H:%M:%S}] Activity changes"]
        for pane_id in sorted(changes):
            before, after = changes[pane_id]
            before_label = before.value.upper() if before else "NEW"
            lines.append(f"  {pane_id}: {before_label} -> {after.value.upper()}")
        return "\n".join(lines)

    async def send(self, pane_id: str, message: str) -> None:
        """Type the message into the operator pane and submit it.

        Raises:
            BackendError: If the operator pane cannot be reached
        """
        await self.backend.send_keys(pane_id, message)
        await asyncio.sleep(self.message_delay)
        await self.backend.send_keys(pane_id, "Enter")
        logger.debug(f"Report sent to operator pane {pane_id}")
