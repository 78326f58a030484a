"""Clear directives and bounded recovery for idle panes.

State machine per pane:

    NOT_CLEARED -> CLEAR_SENT -> VERIFYING -> CLEARED_CONFIRMED
                                           -> RECOVERY_ATTEMPTED -> CLEARED_CONFIRMED | (left uncleared)

A clear can silently fail against a wedged input handler. Recovery runs at
most max_recovery_attempts times (one by default); a pane that still fails
stays outside the cleared set and is retried on its next idle/done transition.
"""

import logging

from panewatch.core.backend import PaneBackend
from panewatch.core.cancellation import CancellationToken
from panewatch.core.config import NO_CONTENT_MARKER, MonitorConfig
from panewatch.core.models import ClearOutcome, ClearState, ClearVerdict, WorkerStatus
from panewatch.core.state import MonitorState
from panewatch.core.utils import normalize_whitespace

logger = logging.getLogger(__name__)


class ClearError(Exception):
    """Error while clearing a pane."""

    def __init__(self, message: str, pane_id: str | None = None):
        super().__init__(message)
        self.pane_id = pane_id


class RecoveryExhaustedError(ClearError):
    """Clear verification failed again after the recovery sequence."""

    def __init__(self, message: str, outcome: ClearOutcome):
        super().__init__(message, outcome.pane_id)
        self.outcome = outcome


def normalize_capture(content: str) -> str:
    return normalize_whitespace(content).lower()


class ClearRecoveryController:
    """Send /clear to newly idle panes and confirm it took effect."""

    def __init__(
        self,
        backend: PaneBackend,
        state: MonitorState,
        config: MonitorConfig | None = None,
        token: CancellationToken | None = None,
    ):
        self.backend = backend
        self.state = state
        self.config = config or MonitorConfig()
        self.token = token or CancellationToken()
        self.clear_states: dict[str, ClearState] = {}
        self._signature = normalize_capture(self.config.clear_signature)
        self._clear_token = self.config.clear_command.lower()
        self._no_content = normalize_capture(NO_CONTENT_MARKER)

    # --- Selection ---

    def protected_panes(self, all_idle_or_done: list[str]) -> set[str]:
        """The lexicographically smallest idle/done ids, which are never cleared."""
        return set(sorted(all_idle_or_done)[: self.config.protected_pane_count])

    def select_targets(
        self, newly_idle_or_done: list[str], all_idle_or_done: list[str]
    ) -> list[str]:
        protected = self.protected_panes(all_idle_or_done)
        targets = []
        for pane_id in sorted(set(newly_idle_or_done)):
            if pane_id in protected:
                logger.debug(f"Pane {pane_id} is protected, not clearing")
            elif pane_id in self.state.cleared:
                logger.debug(f"Pane {pane_id} already cleared")
            else:
                targets.append(pane_id)
        return targets

    def observe_status(self, pane_id: str, status: WorkerStatus) -> None:
        """Revoke cleared-set membership once a pane is WORKING again."""
        if status == WorkerStatus.WORKING and pane_id in self.state.cleared:
            self.state.cleared.discard(pane_id)
            self.clear_states[pane_id] = ClearState.NOT_CLEARED
            logger.debug(f"Pane {pane_id} is working again, removed from cleared set")

    # --- Verification ---

    def verify(self, content: str) -> ClearVerdict:
        """Compare a capture with the cleared signature.

        The normalized capture must contain the signature and exactly one
        clear token. A lone token without the "(no content)" marker gets its
        own verdict; any other mismatch is NOT_CLEARED.
        """
        if not isinstance(content, str) or not content.strip():
            return ClearVerdict.NOT_CLEARED

        normalized = normalize_capture(content)
        occurrences = normalized.count(self._clear_token)
        if occurrences > 1:
            return ClearVerdict.DUPLICATE_CLEAR_TOKEN
        if occurrences == 1 and self._signature in normalized:
            return ClearVerdict.CLEARED
        if occurrences == 1 and self._no_content not in normalized:
            return ClearVerdict.MISSING_NO_CONTENT_MARKER
        return ClearVerdict.NOT_CLEARED

    # --- Actions ---

    async def clear_pane(self, pane_id: str) -> ClearOutcome:
        """Drive one pane through clear, verify and (if needed) recovery.

        Raises:
            RecoveryExhaustedError: If the pane is still not cleared after recovery
            BackendError: If a send or capture call fails
        """
        outcome = ClearOutcome(pane_id=pane_id, state=ClearState.NOT_CLEARED)

        await self._send_clear(pane_id)
        self._set_state(outcome, ClearState.CLEAR_SENT)
        if await self.token.sleep(self.config.settle_delay):
            return outcome

        verdict = await self._verify_pane(pane_id, outcome)
        outcome.verdict = verdict
        outcome.final_verdict = verdict

        attempts = 0
        while verdict != ClearVerdict.CLEARED and attempts < self.config.max_recovery_attempts:
            attempts += 1
            logger.warning(f"Clear of pane {pane_id} not confirmed ({verdict.value}), recovering")
            self._set_state(outcome, ClearState.RECOVERY_ATTEMPTED)
            outcome.recovery_attempted = True
            if not await self._recover(pane_id):
                outcome.error = f"Recovery cancelled: {self.token.reason}"
                return outcome
            verdict = await self._verify_pane(pane_id, outcome)
            outcome.final_verdict = verdict

        if verdict == ClearVerdict.CLEARED:
            self._set_state(outcome, ClearState.CLEARED_CONFIRMED)
            self.state.cleared.add(pane_id)
            logger.info(f"Pane {pane_id} cleared")
        else:
            self._set_state(
                outcome,
                ClearState.RECOVERY_ATTEMPTED
                if outcome.recovery_attempted
                else ClearState.NOT_CLEARED,
            )
            outcome.error = f"Pane {pane_id} not cleared: {verdict.value}"
            raise RecoveryExhaustedError(outcome.error, outcome)
        return outcome

    async def process(
        self, newly_idle_or_done: list[str], all_idle_or_done: list[str]
    ) -> list[ClearOutcome]:
        """Clear every eligible pane; per-pane failures are logged and skipped."""
        outcomes = []
        for pane_id in self.select_targets(newly_idle_or_done, all_idle_or_done):
            if self.token.is_cancelled:
                break
            try:
                outcome = await self.clear_pane(pane_id)
            except RecoveryExhaustedError as e:
                outcome = e.outcome
            except Exception as e:
                outcome = ClearOutcome(
                    pane_id=pane_id,
                    state=ClearState.NOT_CLEARED,
                    error=f"Failed to clear pane {pane_id}: {e}",
                )
                self.clear_states[pane_id] = ClearState.NOT_CLEARED
            if outcome.error and not outcome.confirmed:
                logger.warning(outcome.error)
            outcomes.append(outcome)
        return outcomes

    async def _send_clear(self, pane_id: str) -> None:
        await self.backend.send_keys(pane_id, self.config.clear_command, enter=True)

    async def _verify_pane(self, pane_id: str, outcome: ClearOutcome) -> ClearVerdict:
        self._set_state(outcome, ClearState.VERIFYING)
        content = await self.backend.get_content(pane_id, self.config.capture_lines)
        return self.verify(content)

    async def _recover(self, pane_id: str) -> bool:
        """Escape, Enter, Escape with fixed waits, then resend the clear.

        Returns:
            False if cancelled before the sequence finished
        """
        escape_wait, enter_wait, final_wait = self.config.recovery_delays
        steps = [
            (self.config.cancel_key, escape_wait),
            (self.config.confirm_key, enter_wait),
            (self.config.cancel_key, final_wait),
        ]
        for key, wait in steps:
            await self.backend.send_keys(pane_id, key)
            if await self.token.sleep(wait):
                return False

        await self._send_clear(pane_id)
        return not await self.token.sleep(self.config.settle_delay)

    def _set_state(self, outcome: ClearOutcome, state: ClearState) -> None:
        outcome.state = state
        self.clear_states[outcome.pane_id] = state
