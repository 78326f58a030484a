"""Status inference from pane title and command.

Rules are held as an ordered list of (predicate, status) pairs and the first
match wins. Titles already stamped with a status are authoritative, so the
title rules come first.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from panewatch.core.config import MonitorConfig
from panewatch.core.models import WorkerStatus

logger = logging.getLogger(__name__)

# Checked in this order; UNKNOWN in a title is not authoritative
TITLE_STATUS_ORDER = [
    WorkerStatus.IDLE,
    WorkerStatus.WORKING,
    WorkerStatus.BLOCKED,
    WorkerStatus.DONE,
    WorkerStatus.TERMINATED,
]


@dataclass(frozen=True)
class PaneFacts:
    """Normalized inputs the rule predicates look at."""

    command: str  # stripped, lowercase
    title: str  # uppercase
    alive: bool


@dataclass(frozen=True)
class StatusRule:
    """One entry of the ordered inference table."""

    name: str
    predicate: Callable[[PaneFacts], bool]
    status: WorkerStatus


def extract_status_from_title(title: str) -> WorkerStatus | None:
    """Return the first status token found in the title, if any."""
    upper = title.upper()
    for status in TITLE_STATUS_ORDER:
        if status.label in upper:
            return status
    return None


def matches_runtime(command: str, tokens: list[str]) -> bool:
    """Script-runtime classifier: exact token, ``token `` or ``/token``."""
    return any(command == t or f"{t} " in command or f"/{t}" in command for t in tokens)


def build_rules(config: MonitorConfig) -> list[StatusRule]:
    """Build the ordered rule table for a configuration."""
    shells = {s.lower() for s in config.shell_commands}
    active = [t.lower() for t in config.active_command_tokens]
    build = [t.lower() for t in config.build_command_tokens]
    runtime = [t.lower() for t in config.runtime_command_tokens]

    rules = [
        StatusRule(
            f"title:{status.label}",
            lambda facts, token=status.label: token in facts.title,
            status,
        )
        for status in TITLE_STATUS_ORDER
    ]
    rules += [
        StatusRule(
            "no-live-process",
            lambda facts: not facts.alive or not facts.command,
            WorkerStatus.TERMINATED,
        ),
        StatusRule("shell", lambda facts: facts.command in shells, WorkerStatus.IDLE),
        StatusRule(
            "interactive",
            lambda facts: any(t in facts.command for t in active),
            WorkerStatus.WORKING,
        ),
        StatusRule(
            "build-test",
            lambda facts: any(t in facts.command for t in build),
            WorkerStatus.WORKING,
        ),
        StatusRule(
            "script-runtime",
            lambda facts: matches_runtime(facts.command, runtime),
            WorkerStatus.WORKING,
        ),
    ]
    return rules


def _facts(command: object, title: object, alive: object) -> PaneFacts:
    return PaneFacts(
        command=command.strip().lower() if isinstance(command, str) else "",
        title=title.upper() if isinstance(title, str) else "",
        alive=bool(alive),
    )


class StatusInferenceEngine:
    """Derive a WorkerStatus from what tmux reports about a pane.

    determine_status() is total: it never raises and falls back to the
    configured default when no rule matches.
    """

    def __init__(self, config: MonitorConfig | None = None):
        self.config = config or MonitorConfig()
        self.rules = build_rules(self.config)
        self.default_status = self.config.unknown_command_status

    def determine_status(self, command: str, title: str, alive: bool = True) -> WorkerStatus:
        try:
            rule = self.match(_facts(command, title, alive))
            return rule.status if rule else self.default_status
        except Exception as e:
            logger.warning(f"Status inference failed for command={command!r}: {e}")
            return WorkerStatus.UNKNOWN

    def match(self, facts: PaneFacts) -> StatusRule | None:
        """Return the first rule whose predicate holds."""
        for rule in self.rules:
            if rule.predicate(facts):
                return rule
        return None

    def explain(self, command: str, title: str, alive: bool = True) -> str:
        """Name of the rule that decides the status (for diagnostics)."""
        try:
            rule = self.match(_facts(command, title, alive))
        except Exception as e:
            logger.warning(f"Status inference failed for command={command!r}: {e}")
            return "error"
        return rule.name if rule else "default"
