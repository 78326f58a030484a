"""Interface to the terminal multiplexer.

The monitor core only talks to panes through PaneBackend. The default
implementation lives in panewatch.tmux.
"""

from typing import Protocol

from panewatch.core.models import PaneSnapshot


class BackendError(Exception):
    """A multiplexer call failed (typically the pane has vanished)."""

    def __init__(self, message: str, pane_id: str | None = None):
        super().__init__(message)
        self.pane_id = pane_id


class PaneBackend(Protocol):
    """Protocol for discovering panes and driving them."""

    async def list_panes(self, session: str | None = None) -> list[PaneSnapshot]:
        """List every pane of the session (or of the server if session is None).

        Raises:
            BackendError: If the session cannot be queried
        """
        ...

    async def get_content(self, pane_id: str, lines: int = 50) -> str:
        """Return the trailing lines of the pane's visible buffer."""
        ...

    async def send_keys(self, pane_id: str, keys: str, enter: bool = False) -> None:
        """Send literal text or a special key name such as "Enter" or "Escape"."""
        ...

    async def get_title(self, pane_id: str) -> str:
        ...

    async def set_title(self, pane_id: str, title: str) -> None:
        ...
