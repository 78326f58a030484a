"""tmux backend built on libtmux.

libtmux calls block, so each one runs in a worker thread via
asyncio.to_thread to keep the monitor loop responsive.
"""

import asyncio
import logging

import libtmux

from panewatch.core.backend import BackendError
from panewatch.core.models import PaneSnapshot

logger = logging.getLogger(__name__)

# Title goes last: it is free text and may contain the separator
PANE_FORMAT = "\t".join(
    [
        "#{pane_id}",
        "#{pane_active}",
        "#{window_active}",
        "#{pane_dead}",
        "#{pane_pid}",
        "#{pane_index}",
        "#{pane_current_command}",
        "#{pane_title}",
    ]
)
_FIELD_COUNT = 8


def parse_pane_line(line: str) -> PaneSnapshot | None:
    """Parse one ``list-panes -F PANE_FORMAT`` line."""
    fields = line.split("\t", _FIELD_COUNT - 1)
    if len(fields) < _FIELD_COUNT or not fields[0]:
        return None
    pane_id, pane_active, window_active, dead, pid, index, command, title = fields
    return PaneSnapshot(
        id=pane_id,
        is_active=pane_active == "1" and window_active == "1",
        command=command,
        title=title,
        is_dead=dead == "1" or pid.strip() in ("", "0"),
        index=int(index) if index.isdigit() else None,
    )


class LibtmuxBackend:
    """PaneBackend over a local tmux server."""

    def __init__(self, server: libtmux.Server | None = None):
        self.server = server or libtmux.Server()

    def _cmd(self, *args: str, pane_id: str | None = None) -> list[str]:
        result = self.server.cmd(*args)
        if result.stderr:
            raise BackendError(f"tmux {args[0]} failed: {' '.join(result.stderr)}", pane_id)
        return result.stdout

    async def _run(self, *args: str, pane_id: str | None = None) -> list[str]:
        try:
            return await asyncio.to_thread(self._cmd, *args, pane_id=pane_id)
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"tmux {args[0]} failed: {e}", pane_id) from e

    async def list_panes(self, session: str | None = None) -> list[PaneSnapshot]:
        if session:
            lines = await self._run("list-panes", "-s", "-t", session, "-F", PANE_FORMAT)
        else:
            lines = await self._run("list-panes", "-a", "-F", PANE_FORMAT)

        panes = []
        for line in lines:
            pane = parse_pane_line(line)
            if pane is None:
                logger.debug(f"Skipping unparseable pane line: {line!r}")
                continue
            panes.append(pane)
        return panes

    async def get_content(self, pane_id: str, lines: int = 50) -> str:
        output = await self._run(
            "capture-pane", "-p", "-t", pane_id, "-S", f"-{lines}", pane_id=pane_id
        )
        return "\n".join(output)

    async def send_keys(self, pane_id: str, keys: str, enter: bool = False) -> None:
        await self._run("send-keys", "-t", pane_id, keys, pane_id=pane_id)
        if enter:
            await self._run("send-keys", "-t", pane_id, "Enter", pane_id=pane_id)

    async def get_title(self, pane_id: str) -> str:
        output = await self._run(
            "display-message", "-p", "-t", pane_id, "#{pane_title}", pane_id=pane_id
        )
        return output[0] if output else ""

    async def set_title(self, pane_id: str, title: str) -> None:
        await self._run("select-pane", "-t", pane_id, "-T", title, pane_id=pane_id)
