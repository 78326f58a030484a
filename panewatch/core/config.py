"""Monitor configuration.

Every tunable threshold lives on MonitorConfig. The module-level constants
are the defaults and are referenced directly where a value must not drift
between runs.
"""

import logging
from pathlib import Path

import pydantic
import yaml
from pydantic import BaseModel, Field

from panewatch.core.models import WorkerStatus

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "claude-code"
CONFIG_DIR = ".panewatch"
CONFIG_FILE = "config.yaml"

# Smallest idle/done pane ids that are never cleared
PROTECTED_PANE_COUNT = 4
# Recovery runs at most once per clear attempt
MAX_RECOVERY_ATTEMPTS = 1

CLEAR_COMMAND = "/clear"
CLEAR_SUCCESS_SIGNATURE = "> /clear\n⎿  (no content)"
NO_CONTENT_MARKER = "(no content)"

KEEPALIVE_INTERVAL = 30.0
CYCLE_INTERVAL = 300.0
MAX_RUNTIME = 4 * 60 * 60.0
# Pause between typing a message and submitting it
MESSAGE_DELAY = 0.1
SETTLE_DELAY = 2.0

SHELL_COMMANDS = ["zsh", "bash", "sh", "fish", "tcsh", "csh"]
ACTIVE_COMMAND_TOKENS = ["claude", "cld", "vi", "vim", "nvim", "nano", "emacs", "code", "cursor"]
BUILD_COMMAND_TOKENS = [
    "test",
    "build",
    "compile",
    "bundle",
    "jest",
    "vitest",
    "mocha",
    "cypress",
    "webpack",
    "vite",
    "rollup",
    "esbuild",
    "tsc",
    "typescript",
]
RUNTIME_COMMAND_TOKENS = [
    "node",
    "nodejs",
    "npm",
    "npx",
    "yarn",
    "pnpm",
    "deno",
    "bun",
    "next",
    "nuxt",
    "vite",
    "webpack",
    "rollup",
    "tsc",
    "typescript",
    "ts-node",
    "jest",
    "vitest",
    "mocha",
    "cypress",
    "eslint",
    "prettier",
    "nodemon",
]


class ConfigError(Exception):
    """Configuration file is unreadable or invalid."""

    pass


class MonitorConfig(BaseModel):
    """Settings for one monitoring run."""

    session_name: str = DEFAULT_SESSION

    # Timing (seconds)
    keepalive_interval: float = Field(default=KEEPALIVE_INTERVAL, ge=0, allow_inf_nan=False)
    cycle_interval: float = Field(default=CYCLE_INTERVAL, ge=0, allow_inf_nan=False)
    max_runtime_seconds: float = Field(default=MAX_RUNTIME, ge=0, allow_inf_nan=False)
    message_delay: float = Field(default=MESSAGE_DELAY, ge=0, allow_inf_nan=False)
    settle_delay: float = Field(default=SETTLE_DELAY, ge=0, allow_inf_nan=False)
    # Escape, Enter, Escape waits of the recovery sequence
    recovery_delays: tuple[float, float, float] = (1.0, 1.0, 2.0)

    # Clearing
    protected_pane_count: int = Field(default=PROTECTED_PANE_COUNT, ge=0)
    max_recovery_attempts: int = Field(default=MAX_RECOVERY_ATTEMPTS, ge=0)
    clear_command: str = CLEAR_COMMAND
    clear_signature: str = CLEAR_SUCCESS_SIGNATURE

    # Keystrokes
    keepalive_key: str = "Enter"
    cancel_key: str = "Escape"
    confirm_key: str = "Enter"

    # Capture
    capture_lines: int = Field(default=50, gt=0)

    # Inference
    unknown_command_status: WorkerStatus = WorkerStatus.WORKING
    shell_commands: list[str] = Field(default_factory=lambda: list(SHELL_COMMANDS))
    active_command_tokens: list[str] = Field(default_factory=lambda: list(ACTIVE_COMMAND_TOKENS))
    build_command_tokens: list[str] = Field(default_factory=lambda: list(BUILD_COMMAND_TOKENS))
    runtime_command_tokens: list[str] = Field(
        default_factory=lambda: list(RUNTIME_COMMAND_TOKENS)
    )

    # Reporting
    stamp_titles: bool = True
    report_on_idle_cycles: bool = True
    stats_log_every: int = Field(default=10, gt=0)


def load_config(path: Path | None = None) -> MonitorConfig:
    """Load MonitorConfig from a YAML file.

    A missing file yields the defaults. The file may hold the settings at the
    top level or under a ``monitor:`` key.

    Raises:
        ConfigError: If the file cannot be parsed or fails validation
    """
    if path is None or not path.exists():
        return MonitorConfig()

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config '{path}': {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config '{path}' must be a mapping, got {type(data).__name__}")

    settings = data.get("monitor", data)
    try:
        config = MonitorConfig.model_validate(settings)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Invalid config '{path}': {e}") from e

    logger.debug(f"Loaded config from {path}")
    return config


def default_config_path(repo_path: Path) -> Path:
    return repo_path / CONFIG_DIR / CONFIG_FILE


DEFAULT_CONFIG_YAML = f"""# panewatch configuration
monitor:
  # tmux session to watch
  session_name: {DEFAULT_SESSION}

  # Seconds between keepalive iterations
  keepalive_interval: {KEEPALIVE_INTERVAL:g}
  # Seconds between full discovery cycles
  cycle_interval: {CYCLE_INTERVAL:g}
  # Hard ceiling for one run (seconds)
  max_runtime_seconds: {MAX_RUNTIME:g}
  # Wait after sending /clear before verifying
  settle_delay: {SETTLE_DELAY:g}
  # Pause between typing a report and pressing Enter
  message_delay: {MESSAGE_DELAY:g}

  # Idle/done panes with the smallest ids are never cleared
  protected_pane_count: {PROTECTED_PANE_COUNT}
  max_recovery_attempts: {MAX_RECOVERY_ATTEMPTS}

  # Status for commands no rule recognises
  unknown_command_status: working

  # Write [STATUS] prefixes into pane titles
  stamp_titles: true
"""
