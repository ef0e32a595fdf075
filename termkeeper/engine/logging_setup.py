"""File + stderr logging for termkeeper processes."""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import TerminatorConfig, system_temp_log_dir

LOG_FILE_NAME = "termkeeper.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"


def _ensure_log_dir(log_dir: Path) -> Path:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir
    except OSError as exc:
        fallback = system_temp_log_dir()
        print(
            f"Error: Could not create log directory at {log_dir}: {exc}. "
            f"Using {fallback}",
            file=sys.stderr,
        )
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def configure_logging(
    config: TerminatorConfig,
    verbose: bool = False,
    to_file: bool = True,
) -> logging.Logger:
    """Install handlers on the ``termkeeper`` logger and return it.

    ``verbose`` forces DEBUG regardless of the configured level.
    """
    level_name = "DEBUG" if verbose else config.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger("termkeeper")
    root.setLevel(level)
    root.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)

    if to_file:
        log_dir = _ensure_log_dir(config.log_dir)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=2_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    root.debug("Logging configured level=%s dir=%s", level_name, config.log_dir)
    return root
