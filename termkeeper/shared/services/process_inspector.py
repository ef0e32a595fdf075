"""TTY foreground-job inspection and process/group liveness probes.

A terminal tab always has its shell attached to the TTY, so "is anything
running here" means "is there a foreground process that is not the
shell". That is answered from a ``ps -t`` snapshot:

    PGID   PID STAT COMM
    4101  4101 Ss   -zsh        <- session leader, ignored
    4188  4188 S+   npm         <- foreground (+), not a leader: busy

OS access goes through ``ProcessOps`` so the heuristics can be tested
against synthetic tables.
"""
from __future__ import annotations

import logging
import os
import posixpath
import subprocess
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from termkeeper.engine.errors import ProcessInspectionError

logger = logging.getLogger(__name__)

# Known interactive shells and login wrappers. Uncommon shells (xonsh,
# nu, elvish, ...) are not listed and will read as busy.
DEFAULT_SHELL_NAMES = frozenset({
    "bash", "zsh", "fish", "sh", "tcsh", "csh", "ksh", "dash",
    "login", "script",
})

PS_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class ProcessRow:
    pgid: int
    pid: int
    stat: str
    command: str


@dataclass(frozen=True)
class ForegroundJob:
    pgid: int
    pid: int
    command: str


class ProcessOps(Protocol):
    """OS primitives the inspector and terminator depend on."""

    def send_signal(self, pgid: int, sig: int) -> bool: ...

    def process_group_exists(self, pgid: int) -> bool: ...

    def process_exists(self, pid: int) -> bool: ...

    def snapshot_tty(self, tty_name: str) -> list[ProcessRow]: ...


def parse_ps_rows(output: str) -> list[ProcessRow]:
    """Parse ``ps -o pgid=,pid=,stat=,comm=`` output, skipping bad rows."""
    rows: list[ProcessRow] = []
    for line in output.splitlines():
        parts = line.split(maxsplit=3)
        if len(parts) < 4:
            continue
        try:
            pgid = int(parts[0])
            pid = int(parts[1])
        except ValueError:
            continue
        command = posixpath.basename(parts[3].strip())
        rows.append(ProcessRow(pgid=pgid, pid=pid, stat=parts[2], command=command))
    return rows


class PosixProcessOps:
    """ProcessOps backed by killpg/kill and the system ``ps``."""

    def __init__(self, ps_path: str = "ps") -> None:
        self._ps_path = ps_path

    def send_signal(self, pgid: int, sig: int) -> bool:
        try:
            os.killpg(pgid, sig)
            return True
        except OSError as exc:
            logger.error(
                "Failed to send signal %s to PGID %s: %s", sig, pgid, exc
            )
            return False

    def process_group_exists(self, pgid: int) -> bool:
        try:
            os.killpg(pgid, 0)
        except ProcessLookupError:
            return False
        except OSError as exc:
            # EPERM and friends: something is there we cannot signal.
            logger.debug(
                "killpg(%s, 0) failed with %s; treating group as alive",
                pgid, exc,
            )
            return True
        return True

    def process_exists(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except OSError:
            return False
        return True

    def snapshot_tty(self, tty_name: str) -> list[ProcessRow]:
        try:
            result = subprocess.run(
                [self._ps_path, "-t", tty_name, "-o", "pgid=,pid=,stat=,comm="],
                capture_output=True,
                text=True,
                timeout=PS_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise ProcessInspectionError(tty_name, str(exc)) from exc
        # ps exits 1 when the TTY has no processes; output is still valid.
        if result.returncode not in (0, 1):
            raise ProcessInspectionError(
                tty_name,
                f"ps exited {result.returncode}: {result.stderr.strip()}",
            )
        logger.debug("ps output for TTY %s:\n%s", tty_name, result.stdout)
        return parse_ps_rows(result.stdout)


_default_ops: Optional[PosixProcessOps] = None


def default_process_ops() -> PosixProcessOps:
    global _default_ops
    if _default_ops is None:
        _default_ops = PosixProcessOps()
    return _default_ops


def tty_short_name(tty_path: str) -> str:
    """``/dev/ttys003`` -> ``ttys003``; ``/dev/pts/4`` -> ``pts/4``."""
    path = tty_path.strip()
    if path.startswith("/dev/"):
        return path[len("/dev/"):]
    return posixpath.basename(path)


def is_foreground_candidate(row: ProcessRow, shell_names: Iterable[str]) -> bool:
    return (
        "+" in row.stat
        and "s" not in row.stat
        and row.command.lower().lstrip("-") not in shell_names
    )


def foreground_job(
    tty_path: str,
    ops: Optional[ProcessOps] = None,
    shell_names: Optional[Iterable[str]] = None,
) -> Optional[ForegroundJob]:
    """Return the first non-shell foreground job on the TTY, if any.

    Inspection failures read as idle. Callers about to do something
    destructive must re-verify on their own.
    """
    tty_name = tty_short_name(tty_path) if tty_path else ""
    if not tty_name:
        logger.warning("Could not extract TTY name from path: %r", tty_path)
        return None

    ops = ops or default_process_ops()
    shells = frozenset(s.lower() for s in (shell_names or DEFAULT_SHELL_NAMES))
    try:
        rows = ops.snapshot_tty(tty_name)
    except ProcessInspectionError as exc:
        logger.error("%s", exc)
        return None

    for row in rows:
        if is_foreground_candidate(row, shells):
            logger.info(
                "TTY %s has foreground process: %s (PGID: %s, PID: %s, State: %s)",
                tty_name, row.command, row.pgid, row.pid, row.stat,
            )
            return ForegroundJob(pgid=row.pgid, pid=row.pid, command=row.command)

    logger.debug("TTY %s has no non-shell foreground process.", tty_name)
    return None


def is_busy(
    tty_path: Optional[str],
    ops: Optional[ProcessOps] = None,
    shell_names: Optional[Iterable[str]] = None,
) -> bool:
    if not tty_path:
        return False
    return foreground_job(tty_path, ops=ops, shell_names=shell_names) is not None


def is_process_alive(pid: int, ops: Optional[ProcessOps] = None) -> bool:
    if pid <= 0:
        return False
    return (ops or default_process_ops()).process_exists(pid)


def is_process_group_alive(pgid: int, ops: Optional[ProcessOps] = None) -> bool:
    if pgid <= 0:
        return False
    return (ops or default_process_ops()).process_group_exists(pgid)
