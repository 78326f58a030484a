"""Core modules for panewatch."""

from panewatch.core.cancellation import CancellationToken
from panewatch.core.config import MonitorConfig, load_config
from panewatch.core.models import (
    ActivityStatus,
    ClearState,
    ClearVerdict,
    PaneSnapshot,
    TerminationReason,
    WorkerStatus,
)
from panewatch.core.scheduler import MonitoringCycleScheduler

__all__ = [
    "ActivityStatus",
    "CancellationToken",
    "ClearState",
    "ClearVerdict",
    "MonitorConfig",
    "MonitoringCycleScheduler",
    "PaneSnapshot",
    "TerminationReason",
    "WorkerStatus",
    "load_config",
]
