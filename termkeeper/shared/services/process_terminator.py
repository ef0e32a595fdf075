"""Signal escalation for a foreground process group.

The terminal application, not termkeeper, is the parent of everything
running in a tab, so there is no child handle to wait on. Termination
is confirmed by probing the group with signal 0 after each grace period:

    SIGINT  -> wait sigint_wait  -> gone? done
    SIGTERM -> wait sigterm_wait -> gone? done
    SIGKILL -> wait 0.2s         -> gone? done, else report failure

``timeout_kill`` starts at SIGTERM; it is used when a command overran its
run time rather than when a user asked for an interrupt.
"""
from __future__ import annotations

import logging
import signal
import time
from typing import Callable, Optional

from termkeeper.engine.errors import InvalidProcessGroupError
from termkeeper.shared.models.session import KillResult
from termkeeper.shared.services.process_inspector import (
    ProcessOps,
    default_process_ops,
    is_process_group_alive,
)

logger = logging.getLogger(__name__)

KILL_SETTLE_SECONDS = 0.2


class ProcessGroupTerminator:
    """Runs the SIGINT/SIGTERM/SIGKILL protocol against one PGID at a time.

    Blocks the calling thread for up to
    ``sigint_wait + sigterm_wait + KILL_SETTLE_SECONDS``.
    """

    def __init__(
        self,
        ops: Optional[ProcessOps] = None,
        sigint_wait_seconds: float = 2,
        sigterm_wait_seconds: float = 2,
        sleep: Callable[[float], None] = time.sleep,
        log: Optional[logging.Logger] = None,
    ) -> None:
        if sigint_wait_seconds < 0 or sigterm_wait_seconds < 0:
            raise ValueError("Grace periods must be >= 0")
        self._ops = ops or default_process_ops()
        self._sigint_wait = sigint_wait_seconds
        self._sigterm_wait = sigterm_wait_seconds
        self._sleep = sleep
        self._log = log or logger

    def terminate(self, pgid: int) -> KillResult:
        """Graceful kill: SIGINT, then SIGTERM, then SIGKILL."""
        self._check_pgid(pgid)
        trace: list[str] = []
        if self._signal_and_wait(pgid, signal.SIGINT, self._sigint_wait, trace):
            return KillResult(success=True, message=" ".join(trace))
        return self._escalate_from_term(pgid, trace)

    def timeout_kill(self, pgid: int) -> KillResult:
        """Kill a command that exceeded its run time: SIGTERM, then SIGKILL."""
        self._check_pgid(pgid)
        self._log.warning(
            "Foreground command timed out. Attempting to kill PGID %s.", pgid
        )
        return self._escalate_from_term(pgid, [])

    def _escalate_from_term(self, pgid: int, trace: list[str]) -> KillResult:
        if self._signal_and_wait(pgid, signal.SIGTERM, self._sigterm_wait, trace):
            return KillResult(success=True, message=" ".join(trace))

        self._log.warning(
            "Process group %s still running after SIGINT/SIGTERM. Sending SIGKILL.",
            pgid,
        )
        if self._signal_and_wait(pgid, signal.SIGKILL, KILL_SETTLE_SECONDS, trace):
            return KillResult(success=True, message=" ".join(trace))

        trace.append("Process group still running after SIGKILL.")
        self._log.error(
            "Process group %s did not terminate even after SIGKILL.", pgid
        )
        return KillResult(success=False, message=" ".join(trace))

    def _signal_and_wait(
        self,
        pgid: int,
        sig: signal.Signals,
        wait_seconds: float,
        trace: list[str],
    ) -> bool:
        """Send one signal, wait, and report whether the group is gone."""
        name = sig.name
        self._log.info("Sending %s to process group %s.", name, pgid)
        if not self._ops.send_signal(pgid, sig):
            trace.append(f"Failed to send {name} to PGID {pgid}.")
            # Delivery can fail because the group already exited.
            if not is_process_group_alive(pgid, self._ops):
                trace.append(f"Process group terminated before {name}.")
                return True
            return False

        trace.append(f"Sent {name} to PGID {pgid}.")
        self._log.debug(
            "Sent %s to PGID %s. Waiting for %ss...", name, pgid, wait_seconds
        )
        if wait_seconds > 0:
            self._sleep(wait_seconds)
        if is_process_group_alive(pgid, self._ops):
            return False

        trace.append(f"Process group terminated after {name}.")
        self._log.info("Process group %s terminated after %s.", pgid, name)
        return True

    @staticmethod
    def _check_pgid(pgid: int) -> None:
        if pgid <= 0:
            raise InvalidProcessGroupError(pgid)


def attempt_graceful_kill(pgid: int, config, ops: Optional[ProcessOps] = None) -> KillResult:
    """Run ``terminate`` with grace periods taken from a TerminatorConfig."""
    return ProcessGroupTerminator(
        ops=ops,
        sigint_wait_seconds=config.sigint_wait_seconds,
        sigterm_wait_seconds=config.sigterm_wait_seconds,
    ).terminate(pgid)


def attempt_timeout_kill(pgid: int, config, ops: Optional[ProcessOps] = None) -> KillResult:
    """Run ``timeout_kill`` with the grace period from a TerminatorConfig."""
    return ProcessGroupTerminator(
        ops=ops,
        sigint_wait_seconds=config.sigint_wait_seconds,
        sigterm_wait_seconds=config.sigterm_wait_seconds,
    ).timeout_kill(pgid)
