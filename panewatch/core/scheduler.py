"""Monitoring cycle scheduler.

Drives the repeating cycle over a tmux session:

    discover -> infer -> clear-recovery -> keepalive -> report

and, between full cycles, a short keepalive loop that also runs the
capture-diff batch. Cancellation and the runtime ceiling are checked only at
iteration boundaries; sleeps wake early on cancellation.

Design:
- One MonitorState per scheduler, passed by reference to each component
- Per-pane failures are logged and skipped
- Cycle-level failures (no panes, no operator pane) abort only that cycle
- Entry points never raise; they return a TerminationReason
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime

from panewatch.core.backend import PaneBackend
from panewatch.core.cancellation import CancellationToken
from panewatch.core.capture import CaptureChangeDetector
from panewatch.core.clearing import ClearRecoveryController
from panewatch.core.config import MonitorConfig
from panewatch.core.inference import StatusInferenceEngine
from panewatch.core.models import (
    ActivityStatus,
    ClearOutcome,
    CycleResult,
    MonitorStats,
    PaneSnapshot,
    SchedulerPhase,
    TerminationReason,
    WorkerStatus,
)
from panewatch.core.reporting import StatusReporter
from panewatch.core.state import MonitorState
from panewatch.core.titles import PaneTitleManager

logger = logging.getLogger(__name__)


class SchedulerError(Exception):
    """A monitoring cycle could not run."""

    pass


class DiscoveryError(SchedulerError):
    """Pane discovery failed or returned no panes."""

    pass


class OperatorPaneNotFoundError(SchedulerError):
    """No active pane to use as the reporting sink."""

    pass


class MonitoringCycleScheduler:
    """Run monitoring cycles until cancelled or out of time."""

    def __init__(
        self,
        backend: PaneBackend,
        config: MonitorConfig | None = None,
        token: CancellationToken | None = None,
        state: MonitorState | None = None,
        start_at: datetime | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
        instruction_file: str | None = None,
    ):
        self.backend = backend
        self.config = config or MonitorConfig()
        self.token = token or CancellationToken()
        self.state = state or MonitorState()
        self.start_at = start_at
        self.instruction_file = instruction_file
        self._clock = clock
        self._now = now

        self.inference = StatusInferenceEngine(self.config)
        self.detector = CaptureChangeDetector(
            backend, self.state.capture_history, self.config.capture_lines
        )
        self.clearer = ClearRecoveryController(backend, self.state, self.config, self.token)
        self.titles = PaneTitleManager(backend)
        self.reporter = StatusReporter(backend, self.config.message_delay)

        self.phase = SchedulerPhase.IDLE
        # The ceiling is fixed here; a scheduled start pushes it back by the wait
        wait = (start_at - now()).total_seconds() if start_at else 0.0
        self.deadline = clock() + max(0.0, wait) + self.config.max_runtime_seconds

    # --- Entry points ---

    async def monitor(self) -> TerminationReason:
        """Cycle until cancelled or out of time; stop on discovery failure."""
        return await self._run(continuous=False)

    async def start_continuous_monitoring(self) -> TerminationReason:
        """Cycle until cancelled or out of time; retry after discovery failures."""
        return await self._run(continuous=True)

    async def one_time_monitor(self) -> TerminationReason:
        """Run exactly one full cycle."""
        try:
            if await self._start():
                return self._terminate(TerminationReason.CANCELLED)
            await self.run_cycle()
            return self._terminate(TerminationReason.COMPLETED)
        except SchedulerError as e:
            logger.error(f"Monitoring cycle failed: {e}")
            return self._terminate(TerminationReason.DISCOVERY_FAILED)
        except Exception as e:
            logger.exception(f"Monitoring stopped on unexpected error: {e}")
            return self._terminate(TerminationReason.ERROR)

    def get_diagnostics(self) -> MonitorStats:
        """Current counts by status and role."""
        worker_ids = self.state.worker_ids()
        counts = self.state.tracker.counts_by_status(worker_ids)
        operator = 1 if self.state.operator_pane else 0
        return MonitorStats(
            total=len(worker_ids) + operator,
            operator=operator,
            workers=len(worker_ids),
            by_status={status: n for status, n in counts.items() if n},
            cleared=len(self.state.cleared),
            cycles=self.state.cycles_completed,
            available_for_task=len(self.state.available_panes),
            phase=self.phase,
        )

    # --- Loop ---

    async def _run(self, continuous: bool) -> TerminationReason:
        try:
            if await self._start():
                return self._terminate(TerminationReason.CANCELLED)

            while True:
                if self.token.is_cancelled:
                    return self._terminate(TerminationReason.CANCELLED)
                if self.runtime_exceeded():
                    return self._terminate(TerminationReason.RUNTIME_EXCEEDED)

                try:
                    await self.run_cycle()
                except SchedulerError as e:
                    logger.error(f"Monitoring cycle failed: {e}")
                    if not continuous:
                        return self._terminate(TerminationReason.DISCOVERY_FAILED)

                reason = await self._run_until_next_cycle()
                if reason is not None:
                    return self._terminate(reason)
        except Exception as e:
            logger.exception(f"Monitoring stopped on unexpected error: {e}")
            return self._terminate(TerminationReason.ERROR)

    def runtime_exceeded(self) -> bool:
        return self._clock() >= self.deadline

    def _terminate(self, reason: TerminationReason) -> TerminationReason:
        self.phase = SchedulerPhase.TERMINATED
        if reason == TerminationReason.CANCELLED:
            logger.info(f"Monitoring cancelled: {self.token.reason}")
        elif reason == TerminationReason.RUNTIME_EXCEEDED:
            logger.info("Maximum runtime reached, stopping monitoring")
        else:
            logger.info(f"Monitoring finished: {reason.value}")
        return reason

    async def _start(self) -> bool:
        """Wait for the scheduled start, then hand over the instruction file.

        Returns:
            True if cancelled while waiting
        """
        if await self._wait_for_schedule():
            return True
        if self.instruction_file and not self.token.is_cancelled:
            await self.send_instruction(self.instruction_file)
        return False

    async def _wait_for_schedule(self) -> bool:
        """Block until start_at. Returns True if cancelled while waiting."""
        if self.start_at is None:
            return False
        seconds = (self.start_at - self._now()).total_seconds()
        if seconds <= 0:
            return self.token.is_cancelled
        self.phase = SchedulerPhase.WAITING_FOR_SCHEDULE
        logger.info(f"Waiting until {self.start_at:%Y-%m-%d %H:%M} to start monitoring")
        return await self.token.sleep(seconds)

    async def _run_until_next_cycle(self) -> TerminationReason | None:
        """Keepalive loop between full cycles.

        Returns:
            A termination reason, or None when the next full cycle is due
        """
        next_cycle_at = self._clock() + self.config.cycle_interval
        while True:
            remaining = next_cycle_at - self._clock()
            if remaining <= 0:
                return None
            interval = min(self.config.keepalive_interval or remaining, remaining)
            if await self.token.sleep(interval):
                return TerminationReason.CANCELLED
            if self.runtime_exceeded():
                return TerminationReason.RUNTIME_EXCEEDED
            if self._clock() >= next_cycle_at:
                return None
            await self.keepalive_iteration()
            if self.token.is_cancelled:
                return TerminationReason.CANCELLED

    # --- Full cycle ---

    async def discover(self) -> tuple[PaneSnapshot, list[PaneSnapshot]]:
        """List panes and split off the operator pane.

        Raises:
            DiscoveryError: If listing fails or the session has no panes
            OperatorPaneNotFoundError: If no pane is active
        """
        self.phase = SchedulerPhase.DISCOVERING
        try:
            panes = await self.backend.list_panes(self.config.session_name)
        except Exception as e:
            raise DiscoveryError(f"Pane discovery failed: {e}") from e
        if not panes:
            raise DiscoveryError(f"No panes found in session '{self.config.session_name}'")

        operator = next((pane for pane in panes if pane.is_active), None)
        if operator is None:
            raise OperatorPaneNotFoundError("No active pane found to report to")
        workers = [pane for pane in panes if pane.id != operator.id]
        return operator, workers

    async def send_instruction(self, path: str) -> bool:
        """Tell the operator pane to follow an instruction file.

        Only the path is sent; the file is never read. Failures are logged
        and monitoring carries on.
        """
        try:
            operator, _ = await self.discover()
        except SchedulerError as e:
            logger.error(f"Cannot send instruction file: {e}")
            return False
        logger.info(f"Sending instruction file {path} to operator pane {operator.id}")
        return await self._send_report(operator.id, f"Follow the instruction file: {path}")

    async def run_cycle(self) -> CycleResult:
        """One full monitoring cycle.

        Raises:
            SchedulerError: If discovery fails
        """
        result = CycleResult(cycle=self.state.cycles_completed + 1)

        operator, workers = await self.discover()
        self._adopt(operator, workers)
        worker_ids = [pane.id for pane in workers]

        self.phase = SchedulerPhase.PROCESSING
        for pane in workers:
            status = self.inference.determine_status(pane.command, pane.title, not pane.is_dead)
            if self.state.tracker.update_status(pane.id, status):
                result.status_changes.append(pane.id)
            self.clearer.observe_status(pane.id, status)
        result.panes_processed = len(workers)

        result.newly_idle_or_done = [
            pane_id
            for pane_id in result.status_changes
            if self.state.tracker.get_status(pane_id) in (WorkerStatus.IDLE, WorkerStatus.DONE)
        ]
        all_idle_or_done = [
            pane_id
            for pane_id in self.state.tracker.get_done_and_idle_panes()
            if pane_id in worker_ids
        ]

        if result.newly_idle_or_done:
            self.phase = SchedulerPhase.CLEAR_RECOVERY
            result.clear_outcomes = await self.clearer.process(
                result.newly_idle_or_done, all_idle_or_done
            )
            for outcome in result.clear_outcomes:
                if outcome.error and not outcome.confirmed:
                    result.errors[outcome.pane_id] = outcome.error

        self.phase = SchedulerPhase.KEEPALIVE_CYCLING
        result.keepalives_sent = await self.send_keepalives(workers, result.errors)

        self.phase = SchedulerPhase.REPORTING
        if self.config.report_on_idle_cycles or result.status_changes or result.cleared_count:
            result.report_sent = await self._send_report(
                operator.id,
                self.reporter.compose_cycle_report(
                    result,
                    self.state.tracker,
                    worker_ids,
                    available=sorted(self.state.available_panes & set(worker_ids)),
                    now=self._now(),
                ),
            )
        self.state.tracker.clear_change_flags()

        self.state.cycles_completed += 1
        logger.info(
            f"Cycle {result.cycle}: {result.panes_processed} panes, "
            f"{len(result.status_changes)} changes, {result.cleared_count} cleared"
        )
        if self.state.cycles_completed % self.config.stats_log_every == 0:
            self._log_stats()
        return result

    async def clear_idle_panes(self, everything: bool = False) -> list[ClearOutcome]:
        """On-demand clear of idle and done worker panes.

        Protected panes are skipped as in a monitoring cycle. With everything
        set, every worker pane is cleared regardless of status or protection.

        Raises:
            SchedulerError: If discovery fails
        """
        operator, workers = await self.discover()
        self._adopt(operator, workers)
        worker_ids = [pane.id for pane in workers]
        for pane in workers:
            status = self.inference.determine_status(pane.command, pane.title, not pane.is_dead)
            self.state.tracker.update_status(pane.id, status)

        self.phase = SchedulerPhase.CLEAR_RECOVERY
        if everything:
            targets, idle_or_done = worker_ids, []
        else:
            idle_or_done = [
                pane_id
                for pane_id in self.state.tracker.get_done_and_idle_panes()
                if pane_id in worker_ids
            ]
            targets = idle_or_done
        logger.info(f"Clearing {len(targets)} of {len(worker_ids)} worker panes")
        return await self.clearer.process(targets, idle_or_done)

    async def send_keepalives(
        self, panes: list[PaneSnapshot], errors: dict[str, str] | None = None
    ) -> int:
        """Best-effort keepalive keystroke to each pane."""
        sent = 0
        for pane in panes:
            if self.token.is_cancelled:
                break
            try:
                await self.backend.send_keys(pane.id, self.config.keepalive_key)
                sent += 1
            except Exception as e:
                logger.warning(f"Keepalive to pane {pane.id} failed: {e}")
                if errors is not None:
                    errors.setdefault(pane.id, str(e))
        return sent

    # --- Keepalive iteration ---

    async def keepalive_iteration(self) -> dict[str, tuple[ActivityStatus | None, ActivityStatus]]:
        """Keepalive, capture-diff every worker pane, stamp titles, report flips.

        Returns:
            Panes whose activity changed since the previous iteration
        """
        self.phase = SchedulerPhase.KEEPALIVE_CYCLING
        workers = self.state.worker_panes
        await self.send_keepalives(workers)

        hints = {
            pane.id: [self.state.titles.get(pane.id, pane.title), pane.command] for pane in workers
        }
        batch = await self.detector.detect_many([pane.id for pane in workers], hints)
        if not batch.ok:
            logger.warning(f"Capture failed for {len(batch.errors)} of {len(workers)} panes")

        changes: dict[str, tuple[ActivityStatus | None, ActivityStatus]] = {}
        for pane_id, detection in batch.results.items():
            if detection.activity == ActivityStatus.NOT_EVALUATED:
                continue
            before = self.state.last_activity.get(pane_id)
            if before is not None and before != detection.activity:
                changes[pane_id] = (before, detection.activity)
            self.state.last_activity[pane_id] = detection.activity

            if detection.is_available_for_new_task:
                self.state.available_panes.add(pane_id)
            else:
                self.state.available_panes.discard(pane_id)

            if self.config.stamp_titles:
                await self._stamp_title(pane_id, detection.status)

        self.state.keepalive_iterations += 1
        if changes and self.state.operator_pane is not None:
            self.phase = SchedulerPhase.REPORTING
            await self._send_report(
                self.state.operator_pane.id,
                self.reporter.compose_activity_report(changes, now=self._now()),
            )
        return changes

    def _adopt(self, operator: PaneSnapshot, workers: list[PaneSnapshot]) -> None:
        """Record the discovered topology and forget panes that disappeared."""
        current = {pane.id for pane in workers}
        for pane in self.state.worker_panes:
            if pane.id not in current:
                self.detector.clear_pane_history(pane.id)
                self.state.last_activity.pop(pane.id, None)
                self.state.available_panes.discard(pane.id)
                logger.debug(f"Pane {pane.id} left the session")
        self.state.operator_pane = operator
        self.state.worker_panes = workers
        for pane in workers:
            self.state.titles[pane.id] = pane.title

    async def _stamp_title(self, pane_id: str, status: WorkerStatus) -> None:
        current = self.state.titles.get(pane_id, "")
        try:
            new_title = await self.titles.stamp(pane_id, status, current)
            if new_title is not None:
                self.state.titles[pane_id] = new_title
        except Exception as e:
            logger.warning(f"Failed to update title of pane {pane_id}: {e}")

    async def _send_report(self, pane_id: str, message: str) -> bool:
        try:
            await self.reporter.send(pane_id, message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send report to operator pane {pane_id}: {e}")
            return False

    def _log_stats(self) -> None:
        stats = self.get_diagnostics()
        summary = ", ".join(
            f"{status.label}={count}" for status, count in sorted(stats.by_status.items())
        )
        logger.info(
            f"Stats after {stats.cycles} cycles: {stats.workers} workers "
            f"({summary or 'none'}), {stats.cleared} cleared, "
            f"{stats.available_for_task} available"
        )
