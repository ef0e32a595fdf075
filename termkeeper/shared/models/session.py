"""Session identity and result types shared by the services and engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class SessionIdentity:
    """Logical identity recovered from (or written into) a tab title.

    ``project_hash`` is None for global sessions; on the wire that is the
    NO_PROJECT sentinel, never an omitted field.
    """
    tag: str
    project_hash: Optional[str] = None
    tty_path: Optional[str] = None
    pid: Optional[int] = None

    @property
    def is_global(self) -> bool:
        return self.project_hash is None


@dataclass
class TerminalSessionInfo:
    """One managed tab as reported by a session listing."""
    session_identifier: str  # e.g. "myproject: build"
    tag: str
    project_hash: Optional[str] = None
    full_tab_title: Optional[str] = None
    tty: Optional[str] = None  # live TTY reported by the driver
    is_busy: bool = False
    window_identifier: Optional[str] = None
    tab_identifier: Optional[str] = None
    tty_from_title: Optional[str] = None
    pid_from_title: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_identifier": self.session_identifier,
            "project_hash": self.project_hash,
            "tag": self.tag,
            "full_tab_title": self.full_tab_title,
            "tty": self.tty,
            "is_busy": self.is_busy,
            "window_identifier": self.window_identifier,
            "tab_identifier": self.tab_identifier,
            "tty_from_title": self.tty_from_title,
            "pid_from_title": self.pid_from_title,
        }


@dataclass(frozen=True)
class KillResult:
    """Outcome of a signal-escalation run.

    ``message`` lists every signal that was attempted, even on failure.
    """
    success: bool
    message: str


@dataclass(frozen=True)
class TailResult:
    output: str
    timed_out: bool


@dataclass
class KillSessionResult:
    session: TerminalSessionInfo
    success: bool
    message: str


@dataclass
class ExecutionResult:
    session: TerminalSessionInfo
    output: str = ""
    exit_code: Optional[int] = None
    pid: Optional[int] = None
    killed_by_timeout: bool = False
    kill_message: Optional[str] = None
