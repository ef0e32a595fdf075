"""Session lookup, command execution and kills on top of a terminal driver.

The driver (AppleScript, iTerm API, tmux, ...) only knows about tabs,
titles and TTYs. This module turns that into (project, tag) sessions by
encoding identity into tab titles, and combines the inspector, the
terminator and the log tailer for exec/kill.

Uniqueness of (project, tag) across concurrent callers is not enforced
here; two callers racing on an unseen session can both create a tab.
"""
from __future__ import annotations

import logging
import subprocess
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from termkeeper.shared.models.session import (
    ExecutionResult,
    KillSessionResult,
    SessionIdentity,
    TerminalSessionInfo,
)
from termkeeper.shared.services.log_tail import (
    build_logged_command,
    new_completion_marker,
    strip_timeout_annotation,
    tail_for_marker,
)
from termkeeper.shared.services.process_inspector import (
    foreground_job,
    is_busy,
    tty_short_name,
)
from termkeeper.shared.services.project import NO_PROJECT, session_display_name
from termkeeper.shared.services.session_title import (
    decode_session_title,
    encode_session_title,
    matches_session,
)

from .context import RuntimeContext
from .errors import SessionNotFoundError, TermkeeperError

logger = logging.getLogger(__name__)

PRE_KILL_SCRIPT_TIMEOUT_SECONDS = 10
OUTPUT_LOG_SUBDIR = "cli_command_outputs"


@dataclass
class TabSnapshot:
    """A tab as the driver sees it right now."""
    title: str
    tty: Optional[str] = None
    window_id: Optional[str] = None
    tab_id: Optional[str] = None


class TerminalDriver(Protocol):
    """What termkeeper needs from a terminal application bridge."""

    def list_tabs(self) -> list[TabSnapshot]: ...

    def create_tab(self, title: str) -> TabSnapshot: ...

    def set_title(self, tab: TabSnapshot, title: str) -> None: ...

    def send_command(self, tab: TabSnapshot, command: str) -> Optional[int]:
        """Type ``command`` into the tab; return the PID if observable."""
        ...

    def send_interrupt(self, tab: TabSnapshot) -> bool:
        """Deliver Ctrl+C to the tab."""
        ...


@dataclass
class _ManagedTab:
    info: TerminalSessionInfo
    tab: TabSnapshot
    identity: SessionIdentity


def _display_name(identity: SessionIdentity, project_path: Optional[str]) -> str:
    if project_path:
        return session_display_name(project_path, identity.tag)
    if identity.project_hash is None:
        return session_display_name(None, identity.tag)
    return f"project@{identity.project_hash[:8]}: {identity.tag}"


class SessionManager:
    """Resolve, create, run in and kill (project, tag) sessions."""

    def __init__(
        self,
        driver: TerminalDriver,
        context: Optional[RuntimeContext] = None,
    ) -> None:
        self._driver = driver
        self._ctx = context or RuntimeContext()

    @property
    def config(self):
        return self._ctx.config

    # ── Listing ──

    def _busy(self, tty: Optional[str]) -> bool:
        return is_busy(tty, ops=self._ctx.ops, shell_names=self.config.shell_names)

    def _managed_tabs(
        self,
        project_path: Optional[str] = None,
        tag: Optional[str] = None,
        match_project: bool = False,
    ) -> list[_ManagedTab]:
        managed: list[_ManagedTab] = []
        for tab in self._driver.list_tabs():
            identity = decode_session_title(tab.title)
            if identity is None:
                continue
            if tag is not None and identity.tag != tag:
                continue
            if match_project and not matches_session(identity, project_path, identity.tag):
                continue
            tty = tab.tty or identity.tty_path
            info = TerminalSessionInfo(
                session_identifier=_display_name(identity, project_path if match_project else None),
                tag=identity.tag,
                project_hash=identity.project_hash,
                full_tab_title=tab.title,
                tty=tty,
                is_busy=self._busy(tty),
                window_identifier=tab.window_id,
                tab_identifier=tab.tab_id,
                tty_from_title=identity.tty_path,
                pid_from_title=identity.pid,
            )
            managed.append(_ManagedTab(info=info, tab=tab, identity=identity))
        return managed

    def list_sessions(self, tag: Optional[str] = None) -> list[TerminalSessionInfo]:
        """All managed sessions across projects, optionally for one tag."""
        return [m.info for m in self._managed_tabs(tag=tag)]

    def sessions_for(
        self, project_path: Optional[str], tag: Optional[str] = None
    ) -> list[TerminalSessionInfo]:
        """Managed sessions of one project (``None`` = global sessions)."""
        return [
            m.info
            for m in self._managed_tabs(project_path, tag, match_project=True)
        ]

    # ── Lookup / creation ──

    def _find(
        self,
        project_path: Optional[str],
        tag: str,
        allow_busy: bool,
    ) -> Optional[_ManagedTab]:
        for managed in self._managed_tabs(project_path, tag, match_project=True):
            if not managed.info.is_busy or allow_busy:
                logger.info(
                    "Found existing session for tag '%s' (Project: %s, TTY: %s)",
                    tag, project_path or "Global", managed.info.tty,
                )
                return managed
            logger.info(
                "Session for tag '%s' (Project: %s) is busy and busy reuse is off. TTY: %s",
                tag, project_path or "Global", managed.info.tty,
            )
        return None

    def find_session(
        self,
        project_path: Optional[str],
        tag: str,
        allow_busy: Optional[bool] = None,
    ) -> Optional[TerminalSessionInfo]:
        if allow_busy is None:
            allow_busy = self.config.reuse_busy_sessions
        managed = self._find(project_path, tag, allow_busy)
        return managed.info if managed else None

    def _find_or_create(self, project_path: Optional[str], tag: str) -> _ManagedTab:
        existing = self._find(project_path, tag, self.config.reuse_busy_sessions)
        if existing is not None:
            return existing

        title = encode_session_title(project_path, tag)
        logger.info("Creating new tab for tag '%s' (Project: %s)", tag, project_path or "Global")
        tab = self._driver.create_tab(title)
        if tab.tty:
            title = encode_session_title(project_path, tag, tty_path=tab.tty)
            self._driver.set_title(tab, title)
        tab.title = title
        identity = decode_session_title(title)
        info = TerminalSessionInfo(
            session_identifier=session_display_name(project_path, tag),
            tag=tag,
            project_hash=identity.project_hash,
            full_tab_title=title,
            tty=tab.tty,
            is_busy=False,
            window_identifier=tab.window_id,
            tab_identifier=tab.tab_id,
            tty_from_title=identity.tty_path,
        )
        return _ManagedTab(info=info, tab=tab, identity=identity)

    def find_or_create_session(
        self, project_path: Optional[str], tag: str
    ) -> TerminalSessionInfo:
        return self._find_or_create(project_path, tag).info

    # ── Execution ──

    def execute(
        self,
        project_path: Optional[str],
        tag: str,
        command: str,
        *,
        background: bool = False,
        timeout: Optional[float] = None,
        lines: Optional[int] = None,
    ) -> ExecutionResult:
        """Run ``command`` in the session, creating the tab if needed.

        An empty command only prepares the session. Foreground runs wait
        for the completion marker and kill the job if it overruns.
        """
        managed = self._find_or_create(project_path, tag)
        if not command or not command.strip():
            return ExecutionResult(session=managed.info, output="", exit_code=0)

        lines = self.config.default_lines if lines is None else lines
        tab = managed.tab
        log_path = self._output_log_path(tab.tty)
        marker = new_completion_marker()
        shell_command = build_logged_command(
            command.strip(), log_path, marker, foreground=not background
        )

        logger.debug("Executing command for tag %s with log file %s", tag, log_path)
        pid = self._driver.send_command(tab, shell_command)
        if pid is not None:
            title = encode_session_title(project_path, tag, tty_path=tab.tty, pid=pid)
            self._driver.set_title(tab, title)
            tab.title = title
            managed.info.full_tab_title = title
            managed.info.pid_from_title = pid

        if background:
            tail = tail_for_marker(
                log_path,
                f"{marker}_NEVER",
                self.config.background_startup_seconds,
                lines,
                label=f"BG-{tag}",
            )
            output = strip_timeout_annotation(tail.output).strip()
            if not output:
                output = f"Background command submitted. PID: {pid if pid is not None else -1}"
            return ExecutionResult(session=managed.info, output=output, pid=pid)

        wait = self.config.foreground_completion_seconds if timeout is None else timeout
        tail = tail_for_marker(log_path, marker, wait, lines, label=f"FG-{tag}")
        if not tail.timed_out:
            log_path.unlink(missing_ok=True)
            return ExecutionResult(
                session=managed.info,
                output=tail.output.strip(),
                exit_code=0,
                pid=pid,
            )

        logger.warning("Command timed out for tag %s after %ss", tag, wait)
        kill_message = None
        if tab.tty:
            job = foreground_job(
                tab.tty, ops=self._ctx.ops, shell_names=self.config.shell_names
            )
            if job is not None:
                kill = self._ctx.terminator().timeout_kill(job.pgid)
                kill_message = kill.message
                logger.debug("Timeout kill result: %s", kill_message)
        return ExecutionResult(
            session=managed.info,
            output=tail.output,
            pid=pid,
            killed_by_timeout=True,
            kill_message=kill_message,
        )

    def _output_log_path(self, tty: Optional[str]) -> Path:
        log_dir = self.config.log_dir / OUTPUT_LOG_SUBDIR
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TermkeeperError(
                f"Failed to create output log directory {log_dir}: {exc}"
            ) from exc
        tty_part = tty_short_name(tty).replace("/", "_") if tty else "notty"
        name = f"termkeeper_output_{tty_part}_{int(time.time())}_{uuid.uuid4().hex[:8]}.log"
        return log_dir / name

    # ── Kill ──

    def kill_session(self, project_path: Optional[str], tag: str) -> KillSessionResult:
        """Stop whatever is running in the session's foreground."""
        logger.info(
            "Killing process in session for tag: %s, project: %s",
            tag, project_path or NO_PROJECT,
        )
        managed = self._find(project_path, tag, allow_busy=True)
        if managed is None:
            raise SessionNotFoundError(project_path, tag)

        info = managed.info
        if not info.tty:
            logger.warning("Session %s found but has no TTY. Cannot kill process.", tag)
            return KillSessionResult(session=info, success=False, message="Session has no TTY.")

        trace = [f"Kill attempt for session {tag} (TTY: {info.tty})."]
        script = self.config.pre_kill_script_path
        if script:
            trace.append(self._run_pre_kill_script(script, info.tty, tag))

        job = foreground_job(info.tty, ops=self._ctx.ops, shell_names=self.config.shell_names)
        if job is None:
            trace.append("No process to kill.")
            return KillSessionResult(session=info, success=True, message=" ".join(trace))

        result = self._ctx.terminator().terminate(job.pgid)
        trace.append(result.message)
        if not result.success and not script:
            if self._driver.send_interrupt(managed.tab):
                trace.append("Sent Ctrl+C to session as fallback.")
            else:
                trace.append("Failed to send Ctrl+C to session.")
        return KillSessionResult(session=info, success=result.success, message=" ".join(trace))

    def _run_pre_kill_script(self, script: str, tty: str, tag: str) -> str:
        try:
            completed = subprocess.run(
                [script, tty, tag],
                capture_output=True,
                text=True,
                timeout=PRE_KILL_SCRIPT_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.error("Pre-kill script %s failed: %s", script, exc)
            return f"Pre-kill script failed: {exc}."
        if completed.returncode != 0:
            logger.warning(
                "Pre-kill script %s exited %s: %s",
                script, completed.returncode, completed.stderr.strip(),
            )
            return f"Pre-kill script exited with status {completed.returncode}."
        return "Pre-kill script completed."
