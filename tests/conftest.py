# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the panewatch test suite.

This module provides:
- FakeBackend: a scripted in-memory stand-in for tmux
- A zero-delay MonitorConfig so loops run without real waits
- A manual clock for runtime-ceiling tests

Usage:
    Fixtures are discovered implicitly by pytest.
"""

from __future__ import annotations

from collections import defaultdict

import pytest

from panewatch.core.backend import BackendError
from panewatch.core.cancellation import CancellationToken
from panewatch.core.config import MonitorConfig
from panewatch.core.models import PaneSnapshot
from panewatch.core.state import MonitorState

CLEARED_SCREEN = "> /clear\n⎿  (no content)\n"


# =============================================================================
# Fake tmux backend
# =============================================================================


class FakeBackend:
    """In-memory PaneBackend.

    Captures are scripted per pane: each get_content() call pops the next
    entry, and the last entry repeats once the script runs out.
    """

    def __init__(self, panes: list[PaneSnapshot] | None = None):
        self.panes = list(panes or [])
        self.captures: dict[str, list[str]] = defaultdict(list)
        self.titles: dict[str, str] = {p.id: p.title for p in self.panes}
        self.sent: list[tuple[str, str, bool]] = []
        self.list_calls = 0
        self.fail_listing = False
        self.failing_panes: set[str] = set()

    def script(self, pane_id: str, *captures: str) -> None:
        self.captures[pane_id].extend(captures)

    async def list_panes(self, session: str | None = None) -> list[PaneSnapshot]:
        self.list_calls += 1
        if self.fail_listing:
            raise BackendError(f"can't find session: {session}")
        return list(self.panes)

    async def get_content(self, pane_id: str, lines: int = 50) -> str:
        if pane_id in self.failing_panes:
            raise BackendError(f"can't find pane: {pane_id}", pane_id)
        script = self.captures[pane_id]
        if not script:
            return ""
        return script.pop(0) if len(script) > 1 else script[0]

    async def send_keys(self, pane_id: str, keys: str, enter: bool = False) -> None:
        if pane_id in self.failing_panes:
            raise BackendError(f"can't find pane: {pane_id}", pane_id)
        self.sent.append((pane_id, keys, enter))

    async def get_title(self, pane_id: str) -> str:
        return self.titles.get(pane_id, "")

    async def set_title(self, pane_id: str, title: str) -> None:
        self.titles[pane_id] = title

    def keys_sent_to(self, pane_id: str) -> list[str]:
        return [keys for target, keys, _ in self.sent if target == pane_id]


class ManualClock:
    """Monotonic clock that advances ``step`` seconds per reading."""

    def __init__(self, start: float = 0.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fast_config() -> MonitorConfig:
    """Config with every wait set to zero."""
    return MonitorConfig(
        keepalive_interval=0,
        cycle_interval=0,
        settle_delay=0,
        message_delay=0,
        recovery_delays=(0, 0, 0),
        stamp_titles=False,
    )


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def state() -> MonitorState:
    return MonitorState()


@pytest.fixture
def session_panes() -> list[PaneSnapshot]:
    """Operator pane %0 plus five assistant panes, two of them idle shells."""
    return [
        PaneSnapshot(id="%0", is_active=True, command="claude", title="main"),
        PaneSnapshot(id="%1", command="claude", title="worker1"),
        PaneSnapshot(id="%2", command="zsh", title="worker2"),
        PaneSnapshot(id="%3", command="node", title="worker3"),
        PaneSnapshot(id="%4", command="bash", title="worker4"),
        PaneSnapshot(id="%5", command="", title="worker5", is_dead=True),
    ]


@pytest.fixture
def backend(session_panes) -> FakeBackend:
    return FakeBackend(session_panes)
