"""Per-pane status bookkeeping."""

import logging

from panewatch.core.models import StatusRecord, WorkerStatus

logger = logging.getLogger(__name__)


class PaneStatusTracker:
    """Records the current and previous status of every pane seen this run.

    ``previous`` is only set by a real transition and is dropped again by
    clear_change_flags() once the change has been reported.
    """

    def __init__(self):
        self._records: dict[str, StatusRecord] = {}

    def update_status(self, pane_id: str, status: WorkerStatus) -> bool:
        """Record a status observation.

        Returns:
            True on the first observation of the pane or when the status differs
        """
        record = self._records.get(pane_id)
        if record is None:
            self._records[pane_id] = StatusRecord(current=status)
            return True
        if record.current == status:
            return False

        logger.debug(f"Pane {pane_id}: {record.current.label} -> {status.label}")
        record.previous = record.current
        record.current = status
        return True

    def get_status(self, pane_id: str) -> WorkerStatus | None:
        record = self._records.get(pane_id)
        return record.current if record else None

    def get_record(self, pane_id: str) -> StatusRecord | None:
        return self._records.get(pane_id)

    def get_changed_panes(self) -> list[str]:
        return [pane_id for pane_id, record in self._records.items() if record.has_changed]

    def clear_change_flags(self) -> None:
        for record in self._records.values():
            record.previous = None

    def get_done_and_idle_panes(self) -> list[str]:
        return self._with_status(WorkerStatus.DONE, WorkerStatus.IDLE)

    def get_done_panes(self) -> list[str]:
        return self._with_status(WorkerStatus.DONE)

    def get_panes_with_status(self, status: WorkerStatus) -> list[str]:
        return self._with_status(status)

    def counts_by_status(self, pane_ids: list[str] | None = None) -> dict[WorkerStatus, int]:
        """Count panes per status, optionally restricted to pane_ids."""
        counts = {status: 0 for status in WorkerStatus}
        for pane_id, record in self._records.items():
            if pane_ids is None or pane_id in pane_ids:
                counts[record.current] += 1
        return counts

    def _with_status(self, *statuses: WorkerStatus) -> list[str]:
        return [pane_id for pane_id, record in self._records.items() if record.current in statuses]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, pane_id: object) -> bool:
        return pane_id in self._records
