"""YAML configuration loader.

Loads a single YAML file with a ``settings`` section whose keys mirror
TerminatorConfig fields. Environment variables still take precedence
unless ``apply_env=False``.

Example YAML:
    settings:
      log_level: debug
      log_dir: SYSTEM_TEMP
      sigint_wait_seconds: 3
      sigterm_wait_seconds: 2
      foreground_completion_seconds: 120
      reuse_busy_sessions: false
      pre_kill_script_path: ~/bin/save-state.sh
      shell_names: [bash, zsh, fish, nu]
"""
from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from .config import TerminatorConfig, default_log_dir
from .errors import ConfigError

logger = logging.getLogger(__name__)

_INT_FIELDS = {
    "default_lines",
    "background_startup_seconds",
    "foreground_completion_seconds",
    "sigint_wait_seconds",
    "sigterm_wait_seconds",
}


def _coerce(key: str, value: Any) -> Any:
    if key in _INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"settings.{key} must be an integer, got {value!r}") from exc
    if key == "reuse_busy_sessions":
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if key == "shell_names":
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            raise ConfigError("settings.shell_names must be a list or comma string")
        return frozenset(str(v) for v in value)
    if key == "log_level":
        return str(value).upper()
    if key == "log_dir":
        return value or default_log_dir()
    if key == "pre_kill_script_path":
        return str(Path(str(value)).expanduser()) if value else None
    return value


def parse_settings(data: Any) -> TerminatorConfig:
    """Build a TerminatorConfig from an already-parsed YAML document."""
    if data is None:
        return TerminatorConfig()
    if not isinstance(data, dict):
        raise ConfigError("Config document must be a mapping")

    raw = data.get("settings") or {}
    if not isinstance(raw, dict):
        raise ConfigError("'settings' section must be a mapping")

    known = {f.name for f in fields(TerminatorConfig)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("parse_settings: ignoring unknown setting %r", key)
            continue
        kwargs[key] = _coerce(key, value)
    return TerminatorConfig(**kwargs)


def load_yaml_config(path: str | Path, apply_env: bool = True) -> TerminatorConfig:
    """Load a YAML config file, optionally layering env vars on top."""
    path = Path(path).expanduser()
    logger.info(
        "load_yaml_config: loading %s (exists=%s)", path, path.exists()
    )
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    config = parse_settings(data)
    if apply_env:
        config = TerminatorConfig.from_env(base=config)
    return config
