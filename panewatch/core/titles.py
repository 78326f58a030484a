"""Status prefixes in pane titles.

Titles are stamped as ``[STATUS] base`` (optionally ``[STATUS] role: base``).
A stamped title is picked up again by the inference engine's title rules.
"""

import logging
import re

from panewatch.core.backend import PaneBackend
from panewatch.core.models import WorkerStatus

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "tmux"

_STATUS_PREFIX_RE = re.compile(
    r"^\[(?:WORKING|IDLE|BLOCKED|DONE|TERMINATED|UNKNOWN)"
    r"(?:\s+\d{2}/\d{2}\s+\d{2}:\d{2})?\]\s*"
)
_REPEATED_ROLE_RE = re.compile(r"^(\w+):\s*(?:\1:\s*)+")


def clean_title(title: str) -> str:
    """Strip every status prefix and collapse repeated ``role:`` prefixes."""
    cleaned = title.strip()
    while True:
        stripped = _STATUS_PREFIX_RE.sub("", cleaned)
        stripped = _REPEATED_ROLE_RE.sub(r"\1: ", stripped).strip()
        if stripped == cleaned:
            return cleaned
        cleaned = stripped


def build_title(status: WorkerStatus, title: str, role: str | None = None) -> str:
    base = clean_title(title) or FALLBACK_TITLE
    if role and not base.startswith(f"{role}:"):
        base = f"{role}: {base}"
    return f"[{status.label}] {base}"


class PaneTitleManager:
    """Write status prefixes into pane titles, skipping no-op updates."""

    def __init__(self, backend: PaneBackend):
        self.backend = backend

    async def stamp(
        self,
        pane_id: str,
        status: WorkerStatus,
        current_title: str | None = None,
        role: str | None = None,
    ) -> str | None:
        """Stamp ``status`` into the pane title.

        UNKNOWN is never stamped, since a stamped title is authoritative.

        Returns:
            The new title, or None if the title was left unchanged
        """
        if status == WorkerStatus.UNKNOWN:
            return None

        if current_title is None:
            current_title = await self.backend.get_title(pane_id)
        new_title = build_title(status, current_title, role)
        if new_title == current_title:
            return None

        await self.backend.set_title(pane_id, new_title)
        logger.debug(f"Pane {pane_id} title -> {new_title!r}")
        return new_title
