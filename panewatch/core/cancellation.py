"""Cooperative cancellation shared by every component that waits.

The token may be cancelled from any thread (a signal handler, a key
listener) while the monitor polls it at sleep and loop boundaries. An
in-flight backend call is never interrupted.
"""

import asyncio
import logging
import threading
import time

logger = logging.getLogger(__name__)


class CancelledByUser(Exception):
    """Raised by throw_if_cancelled() once the token is cancelled."""

    def __init__(self, reason: str | None):
        super().__init__(f"Operation cancelled: {reason or 'no reason given'}")
        self.reason = reason


class CancellationToken:
    """Thread-safe cancellation flag with a reason.

    USAGE (from any thread):
        token.cancel("ESC pressed")

    USAGE (from the monitor loop):
        if await token.sleep(30):
            return  # cancelled during the wait
    """

    POLL_INTERVAL = 0.2

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._cancelled_at: float | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation. Only the first reason is kept."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._cancelled_at = time.time()
            self._event.set()
        logger.info(f"Cancellation requested: {reason}")

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        with self._lock:
            return self._reason

    @property
    def cancelled_at(self) -> float | None:
        with self._lock:
            return self._cancelled_at

    def reset(self) -> None:
        with self._lock:
            self._event.clear()
            self._reason = None
            self._cancelled_at = None

    def throw_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledByUser(self.reason)

    async def sleep(self, seconds: float) -> bool:
        """Sleep for up to ``seconds``, waking early on cancellation.

        Returns:
            True if the token was cancelled before or during the wait
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0.0, seconds)
        while not self._event.is_set():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.POLL_INTERVAL, remaining))
        return True
