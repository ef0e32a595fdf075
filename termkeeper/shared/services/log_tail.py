"""Wait for a command's completion marker in its output log.

Commands are sent to a tab as a shell line that redirects their output
into a log file and echoes a unique marker when they finish. The tab
itself gives no completion signal, so the log is polled.
"""
from __future__ import annotations

import logging
import shlex
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from termkeeper.shared.models.session import TailResult

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.2
MARKER_PREFIX = "TERMKEEPER_CMD_DONE_"
TIMEOUT_ANNOTATION = "---[MARKER NOT FOUND, TIMEOUT OCCURRED]---"


def new_completion_marker() -> str:
    return f"{MARKER_PREFIX}{uuid.uuid4().hex}"


def build_logged_command(
    command: str,
    log_path: str | Path,
    marker: str,
    foreground: bool = True,
) -> str:
    """Wrap ``command`` so its output lands in ``log_path``.

    Foreground runs append ``marker`` on its own line once the command
    exits; background runs are detached from the shell's job table.
    """
    log = shlex.quote(str(log_path))
    if foreground:
        return (
            f"( ( {command} ) > {log} 2>&1; "
            f"echo {shlex.quote(marker)} >> {log} )"
        )
    return f"( ( {command} ) > {log} 2>&1 ) & disown"


def strip_timeout_annotation(text: str) -> str:
    return text.replace("\n" + TIMEOUT_ANNOTATION, "").replace(TIMEOUT_ANNOTATION, "")


def _last_lines(lines: list[str], max_lines: int) -> str:
    if max_lines > 0 and len(lines) > max_lines:
        lines = lines[-max_lines:]
    return "\n".join(lines)


def _split_lines(content: str) -> list[str]:
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _completed(
    content: str, marker: str, max_lines: int, label: str, log_path: Path
) -> Optional[TailResult]:
    """Lines before the first marker line, or None if the marker is absent."""
    if marker not in content:
        return None
    logger.info("[%s] Marker %r found in %s.", label, marker, log_path)
    lines = _split_lines(content)
    marker_index = next(i for i, line in enumerate(lines) if marker in line)
    return TailResult(
        output=_last_lines(lines[:marker_index], max_lines),
        timed_out=False,
    )


def tail_for_marker(
    path: str | Path,
    marker: str,
    timeout_seconds: float,
    max_lines: int,
    *,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    label: str = "tail",
) -> TailResult:
    """Poll ``path`` until ``marker`` shows up or ``timeout_seconds`` pass.

    On success returns up to ``max_lines`` lines preceding the marker line
    (the marker line itself is dropped). On timeout returns the capped
    tail of whatever is there plus a timeout annotation. ``max_lines <= 0``
    means no cap. Never raises for a missing or unreadable file.
    """
    log_path = Path(path)
    logger.debug(
        "[%s] Tailing %s for marker %r with timeout %ss",
        label, log_path, marker, timeout_seconds,
    )
    deadline = clock() + timeout_seconds

    while clock() < deadline:
        sleep(poll_interval)
        if not log_path.exists():
            continue
        try:
            content = log_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("[%s] Error reading log file %s: %s", label, log_path, exc)
            continue
        found = _completed(content, marker, max_lines, label, log_path)
        if found is not None:
            return found

    # One last read: the marker may have landed after the final poll, and a
    # non-positive timeout never polls at all.
    if not log_path.exists():
        logger.warning("[%s] Timeout waiting for marker %r in %s.", label, marker, log_path)
        return TailResult(
            output=f"Log file {log_path} not found or empty after timeout.",
            timed_out=True,
        )
    try:
        content = log_path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.error("[%s] Error reading log file %s on timeout: %s", label, log_path, exc)
        return TailResult(
            output=f"Error reading log file on timeout: {exc}",
            timed_out=True,
        )
    found = _completed(content, marker, max_lines, label, log_path)
    if found is not None:
        return found

    logger.warning("[%s] Timeout waiting for marker %r in %s.", label, marker, log_path)
    output = _last_lines(_split_lines(content), max_lines)
    return TailResult(output=f"{output}\n{TIMEOUT_ANNOTATION}", timed_out=True)
