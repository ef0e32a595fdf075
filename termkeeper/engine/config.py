"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via TERMKEEPER_* env vars,
or via a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ENV_PREFIX = "TERMKEEPER_"
SYSTEM_TEMP = "SYSTEM_TEMP"
_TRUTHY = {"1", "true", "yes", "on"}


def default_shell_names() -> frozenset[str]:
    from termkeeper.shared.services.process_inspector import DEFAULT_SHELL_NAMES
    return DEFAULT_SHELL_NAMES


def default_log_dir() -> Path:
    return Path.home() / ".termkeeper" / "logs"


def system_temp_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "termkeeper"


def resolve_log_dir(raw: str | None) -> Path:
    """Expand a configured log dir; ``SYSTEM_TEMP`` selects the temp dir."""
    if not raw:
        return default_log_dir()
    if raw.strip().upper() == SYSTEM_TEMP:
        return system_temp_log_dir()
    return Path(raw).expanduser()


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s must be an integer; using %s", name, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("%s=%s is below %s; clamping", name, value, minimum)
        return minimum
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass
class TerminatorConfig:
    """Runtime settings for session lookup, command runs and kills."""

    # Logging
    log_level: str = "INFO"
    log_dir: Path = field(default_factory=default_log_dir)

    # Output capture
    default_lines: int = 100
    background_startup_seconds: int = 5
    foreground_completion_seconds: int = 60

    # Kill escalation grace periods. Must be >= 0.
    sigint_wait_seconds: int = 2
    sigterm_wait_seconds: int = 2

    # Session reuse
    reuse_busy_sessions: bool = False

    # Optional executable run before a kill, as `<script> <tty> <tag>`.
    pre_kill_script_path: str | None = None

    # Command names that count as "just the shell" on a TTY.
    shell_names: frozenset[str] = field(default_factory=default_shell_names)

    def __post_init__(self) -> None:
        self.log_dir = resolve_log_dir(str(self.log_dir))
        self.sigint_wait_seconds = max(0, int(self.sigint_wait_seconds))
        self.sigterm_wait_seconds = max(0, int(self.sigterm_wait_seconds))
        self.shell_names = frozenset(s.strip().lower() for s in self.shell_names if s.strip())

    @classmethod
    def from_env(cls, base: TerminatorConfig | None = None) -> TerminatorConfig:
        """Load configuration from TERMKEEPER_* environment variables.

        Values missing from the environment come from ``base`` (or the
        dataclass defaults).
        """
        base = base or cls()
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)
        }
        if overrides:
            logger.info(
                "TerminatorConfig.from_env: env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("TerminatorConfig.from_env: no TERMKEEPER_* env vars set")

        shell_names_raw = os.getenv("TERMKEEPER_SHELL_NAMES", "").strip()
        log_dir_raw = os.getenv("TERMKEEPER_LOG_DIR", "").strip()

        config = cls(
            log_level=os.getenv("TERMKEEPER_LOG_LEVEL", base.log_level).upper(),
            log_dir=resolve_log_dir(log_dir_raw) if log_dir_raw else base.log_dir,
            default_lines=_env_int(
                "TERMKEEPER_DEFAULT_LINES", base.default_lines
            ),
            background_startup_seconds=_env_int(
                "TERMKEEPER_BACKGROUND_STARTUP_SECONDS",
                base.background_startup_seconds, minimum=0,
            ),
            foreground_completion_seconds=_env_int(
                "TERMKEEPER_FOREGROUND_COMPLETION_SECONDS",
                base.foreground_completion_seconds, minimum=0,
            ),
            sigint_wait_seconds=_env_int(
                "TERMKEEPER_SIGINT_WAIT_SECONDS",
                base.sigint_wait_seconds, minimum=0,
            ),
            sigterm_wait_seconds=_env_int(
                "TERMKEEPER_SIGTERM_WAIT_SECONDS",
                base.sigterm_wait_seconds, minimum=0,
            ),
            reuse_busy_sessions=_env_bool(
                "TERMKEEPER_REUSE_BUSY_SESSIONS", base.reuse_busy_sessions
            ),
            pre_kill_script_path=(
                os.getenv("TERMKEEPER_PRE_KILL_SCRIPT_PATH")
                or base.pre_kill_script_path
            ),
            shell_names=(
                frozenset(shell_names_raw.split(","))
                if shell_names_raw else base.shell_names
            ),
        )
        logger.debug("TerminatorConfig.from_env: %s", config.as_dict())
        return config

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, frozenset):
                value = sorted(value)
            out[f.name] = value
        return out
