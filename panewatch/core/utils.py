"""Shared utility functions for panewatch core modules."""

import re
from datetime import datetime, timedelta

_WHITESPACE_RE = re.compile(r"\s+")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_whitespace(text: str) -> str:
    """Strip and collapse whitespace runs to single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_start_time(value: str, now: datetime | None = None) -> datetime:
    """Resolve an ``HH:MM`` string to its next occurrence.

    A time that is not strictly in the future rolls over to tomorrow.

    Args:
        value: Wall-clock time such as "09:30"
        now: Reference time (defaults to the current local time)

    Returns:
        The datetime at which monitoring should start

    Raises:
        ValueError: If the string is not a valid 24h time
    """
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time format '{value}', expected HH:MM")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time '{value}': hour must be 0-23 and minute 0-59")

    now = now or datetime.now()
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target


def format_duration(seconds: float) -> str:
    """Render seconds as e.g. ``1h 05m`` or ``42s``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
