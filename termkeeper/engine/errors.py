"""Exception hierarchy for termkeeper.

Only caller mistakes and unrecoverable conditions are raised. Expected
outcomes (foreign titles, missing TTYs, timeouts, failed probes) are
returned as results instead.
"""
from __future__ import annotations


class TermkeeperError(Exception):
    """Base exception for all termkeeper errors."""


class InvalidTagError(TermkeeperError, ValueError):
    """A session tag was empty or missing."""
    def __init__(self, tag: str | None):
        self.tag = tag
        super().__init__(
            f"Session tag must be a non-empty string, got {tag!r}"
        )


class InvalidProcessGroupError(TermkeeperError, ValueError):
    """A process group id that can never be signalled safely."""
    def __init__(self, pgid: int):
        self.pgid = pgid
        super().__init__(f"Refusing to signal invalid process group {pgid}")


class ProcessInspectionError(TermkeeperError):
    """The OS process snapshot could not be taken."""
    def __init__(self, tty_name: str, reason: str):
        self.tty_name = tty_name
        self.reason = reason
        super().__init__(
            f"Cannot inspect processes on TTY {tty_name}: {reason}"
        )


class ConfigError(TermkeeperError):
    """Configuration file is unreadable or malformed."""


class SessionNotFoundError(TermkeeperError):
    """No managed tab matches the requested project and tag."""
    def __init__(self, project_path: str | None, tag: str):
        self.project_path = project_path
        self.tag = tag
        super().__init__(
            f"Session for tag '{tag}' in project "
            f"'{project_path or 'N/A'}' not found"
        )


class DriverError(TermkeeperError):
    """The terminal driver failed to perform a requested action."""
    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Terminal driver failed to {action}: {reason}")
