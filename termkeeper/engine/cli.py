"""Command-line entry point for termkeeper.

Usage:
    termkeeper title encode --project ~/src/api --tag build --tty /dev/ttys003
    termkeeper title decode '::TERMINATOR_SESSION::::PROJECT_HASH=...::TAG=build::'
    termkeeper fingerprint ~/src/api
    termkeeper inspect /dev/ttys003
    termkeeper kill 4188
    termkeeper kill 4188 --timeout-kill
    termkeeper tail /tmp/out.log TERMKEEPER_CMD_DONE_abc --timeout 30
"""
from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import TerminatorConfig
from .context import RuntimeContext
from .errors import (
    ConfigError,
    InvalidProcessGroupError,
    InvalidTagError,
    TermkeeperError,
)
from .logging_setup import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

console = Console()
err_console = Console(stderr=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termkeeper",
        description="Stable (project, tag) terminal sessions and safe process kills",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML settings file (env vars still take precedence)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Log to stderr only",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    title = sub.add_parser("title", help="Encode or decode a session tab title")
    title_sub = title.add_subparsers(dest="title_command", required=True)
    enc = title_sub.add_parser("encode", help="Build a title for (project, tag)")
    enc.add_argument("--project", default=None, help="Project path (omit for global)")
    enc.add_argument("--tag", required=True, help="Session tag")
    enc.add_argument("--tty", default=None, help="TTY device path")
    enc.add_argument("--pid", type=int, default=None, help="PID of the last command")
    dec = title_sub.add_parser("decode", help="Parse a tab title")
    dec.add_argument("title", help="Full tab title")

    fp = sub.add_parser("fingerprint", help="Print a project's fingerprint")
    fp.add_argument("project", nargs="?", default=None, help="Project path")

    inspect = sub.add_parser("inspect", help="Show the foreground job on a TTY")
    inspect.add_argument("tty", help="TTY path, e.g. /dev/ttys003")

    kill = sub.add_parser("kill", help="Terminate a process group")
    kill.add_argument("pgid", type=int, help="Process group id")
    kill.add_argument(
        "--timeout-kill",
        action="store_true",
        help="Start at SIGTERM instead of SIGINT",
    )

    tail = sub.add_parser("tail", help="Wait for a completion marker in a log")
    tail.add_argument("path", help="Log file path")
    tail.add_argument("marker", help="Completion marker")
    tail.add_argument("--timeout", type=float, default=None,
                      help="Seconds to wait (default: foreground completion timeout)")
    tail.add_argument("--lines", type=int, default=None,
                      help="Max lines to print (default: from config)")
    return parser


def _load_config(path: str | None) -> TerminatorConfig:
    if path:
        from .yaml_config import load_yaml_config
        return load_yaml_config(path)
    return TerminatorConfig.from_env()


def _cmd_title(args: argparse.Namespace, ctx: RuntimeContext) -> int:
    from termkeeper.shared.services.session_title import (
        decode_session_title,
        encode_session_title,
    )

    if args.title_command == "encode":
        console.print(
            encode_session_title(args.project, args.tag, tty_path=args.tty, pid=args.pid),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
        return EXIT_OK

    identity = decode_session_title(args.title)
    if identity is None:
        err_console.print("Not a termkeeper session title.")
        return EXIT_FAILED
    table = Table(title="Session identity", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("tag", identity.tag)
    table.add_row("project_hash", identity.project_hash or "(global)")
    table.add_row("tty_path", identity.tty_path or "-")
    table.add_row("pid", str(identity.pid) if identity.pid is not None else "-")
    console.print(table)
    return EXIT_OK


def _cmd_fingerprint(args: argparse.Namespace, ctx: RuntimeContext) -> int:
    from termkeeper.shared.services.project import project_fingerprint

    console.print(
        project_fingerprint(args.project), markup=False, highlight=False, soft_wrap=True
    )
    return EXIT_OK


def _cmd_inspect(args: argparse.Namespace, ctx: RuntimeContext) -> int:
    from termkeeper.shared.services.process_inspector import foreground_job

    job = foreground_job(args.tty, ops=ctx.ops, shell_names=ctx.config.shell_names)
    if job is None:
        console.print(f"{args.tty}: idle")
        return EXIT_OK
    table = Table(title=f"Foreground job on {args.tty}")
    table.add_column("PGID", justify="right")
    table.add_column("PID", justify="right")
    table.add_column("Command")
    table.add_row(str(job.pgid), str(job.pid), job.command)
    console.print(table)
    return EXIT_OK


def _cmd_kill(args: argparse.Namespace, ctx: RuntimeContext) -> int:
    terminator = ctx.terminator()
    if args.timeout_kill:
        result = terminator.timeout_kill(args.pgid)
    else:
        result = terminator.terminate(args.pgid)
    style = "green" if result.success else "red"
    console.print(f"[{style}]{escape(result.message)}[/{style}]")
    return EXIT_OK if result.success else EXIT_FAILED


def _cmd_tail(args: argparse.Namespace, ctx: RuntimeContext) -> int:
    from termkeeper.shared.services.log_tail import tail_for_marker

    timeout = (
        ctx.config.foreground_completion_seconds
        if args.timeout is None else args.timeout
    )
    lines = ctx.config.default_lines if args.lines is None else args.lines
    result = tail_for_marker(args.path, args.marker, timeout, lines, label="cli")
    console.print(result.output, markup=False, highlight=False, soft_wrap=True)
    return EXIT_FAILED if result.timed_out else EXIT_OK


_COMMANDS = {
    "title": _cmd_title,
    "fingerprint": _cmd_fingerprint,
    "inspect": _cmd_inspect,
    "kill": _cmd_kill,
    "tail": _cmd_tail,
}


def run(argv: list[str] | None = None) -> int:
    """Parse ``argv`` and run one command; returns the exit code."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return EXIT_OK if exc.code == 0 else EXIT_USAGE

    try:
        config = _load_config(args.config)
    except ConfigError as exc:
        err_console.print(f"Error: {exc}", markup=False)
        return EXIT_USAGE

    configure_logging(config, verbose=args.verbose, to_file=not args.no_log_file)
    ctx = RuntimeContext(config=config)

    try:
        return _COMMANDS[args.command](args, ctx)
    except (InvalidTagError, InvalidProcessGroupError) as exc:
        err_console.print(f"Error: {exc}", markup=False)
        return EXIT_USAGE
    except TermkeeperError as exc:
        logger.error("%s", exc)
        err_console.print(f"Error: {exc}", markup=False)
        return EXIT_FAILED


def main() -> None:
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
