from __future__ import annotations

import os

import pytest

from fakes import FakeProcessOps, job_row, shell_row
from termkeeper.engine.errors import ProcessInspectionError
from termkeeper.shared.services.process_inspector import (
    DEFAULT_SHELL_NAMES,
    ForegroundJob,
    PosixProcessOps,
    ProcessRow,
    foreground_job,
    is_busy,
    is_process_alive,
    is_process_group_alive,
    parse_ps_rows,
    tty_short_name,
)


def test_tty_short_name() -> None:
    assert tty_short_name("/dev/ttys003") == "ttys003"
    assert tty_short_name("/dev/pts/4") == "pts/4"
    assert tty_short_name("ttys007") == "ttys007"


def test_parse_ps_rows_skips_malformed_lines() -> None:
    output = (
        " 4101  4101 Ss   -zsh\n"
        " 4188  4188 S+   /usr/local/bin/node\n"
        "garbage\n"
        " x 12 S+ vim\n"
        " 4190  4191 R+   python3 -m http.server\n"
    )
    rows = parse_ps_rows(output)
    assert rows == [
        ProcessRow(pgid=4101, pid=4101, stat="Ss", command="-zsh"),
        ProcessRow(pgid=4188, pid=4188, stat="S+", command="node"),
        ProcessRow(pgid=4190, pid=4191, stat="R+", command="python3 -m http.server"),
    ]


def test_shell_only_tty_is_idle() -> None:
    ops = FakeProcessOps(tables={"ttys003": [shell_row()]})
    assert foreground_job("/dev/ttys003", ops=ops) is None
    assert not is_busy("/dev/ttys003", ops=ops)
    assert ops.snapshots == ["ttys003", "ttys003"]


def test_foreground_non_shell_is_busy() -> None:
    ops = FakeProcessOps(tables={"ttys003": [shell_row(), job_row(pgid=4188, pid=4190)]})
    assert foreground_job("/dev/ttys003", ops=ops) == ForegroundJob(
        pgid=4188, pid=4190, command="npm"
    )
    assert is_busy("/dev/ttys003", ops=ops)


def test_session_leader_in_foreground_is_ignored() -> None:
    # "Ss+" is a leader that owns the terminal, i.e. the shell itself.
    rows = [ProcessRow(pgid=300, pid=300, stat="Ss+", command="vim")]
    ops = FakeProcessOps(tables={"ttys001": rows})
    assert not is_busy("/dev/ttys001", ops=ops)


def test_background_process_is_ignored() -> None:
    rows = [shell_row(), ProcessRow(pgid=400, pid=400, stat="S", command="sleep")]
    ops = FakeProcessOps(tables={"ttys001": rows})
    assert not is_busy("/dev/ttys001", ops=ops)


def test_foreground_shell_is_not_a_job() -> None:
    # A nested shell in the foreground still reads as idle.
    rows = [shell_row(), ProcessRow(pgid=500, pid=500, stat="S+", command="-bash")]
    ops = FakeProcessOps(tables={"ttys001": rows})
    assert foreground_job("/dev/ttys001", ops=ops) is None


def test_custom_shell_names() -> None:
    rows = [shell_row(), ProcessRow(pgid=600, pid=600, stat="S+", command="nu")]
    ops = FakeProcessOps(tables={"ttys001": rows})
    assert is_busy("/dev/ttys001", ops=ops)
    assert not is_busy("/dev/ttys001", ops=ops, shell_names=DEFAULT_SHELL_NAMES | {"NU"})


def test_snapshot_failure_reads_as_idle() -> None:
    ops = FakeProcessOps(snapshot_error=True)
    assert foreground_job("/dev/ttys003", ops=ops) is None
    assert not is_busy("/dev/ttys003", ops=ops)


def test_missing_tty_is_idle_without_probing() -> None:
    ops = FakeProcessOps()
    assert not is_busy(None, ops=ops)
    assert not is_busy("", ops=ops)
    assert foreground_job("/dev/", ops=ops) is None
    assert ops.snapshots == []


def test_liveness_rejects_non_positive_ids() -> None:
    ops = FakeProcessOps(alive_groups={0, -1})
    ops.alive_pids = {0, -1}
    assert not is_process_alive(0, ops=ops)
    assert not is_process_alive(-1, ops=ops)
    assert not is_process_group_alive(0, ops=ops)
    assert not is_process_group_alive(-5, ops=ops)


def test_liveness_delegates_to_ops() -> None:
    ops = FakeProcessOps(alive_groups={42})
    ops.alive_pids = {7}
    assert is_process_alive(7, ops=ops)
    assert not is_process_alive(8, ops=ops)
    assert is_process_group_alive(42, ops=ops)
    assert not is_process_group_alive(43, ops=ops)


def test_posix_ops_sees_current_process() -> None:
    ops = PosixProcessOps()
    assert ops.process_exists(os.getpid())
    assert ops.process_group_exists(os.getpgrp())


def _raise(exc: BaseException):
    def killpg(pgid: int, sig: int) -> None:
        raise exc
    return killpg


def test_posix_group_probe_permission_error_means_alive(monkeypatch) -> None:
    monkeypatch.setattr(os, "killpg", _raise(PermissionError(1, "Operation not permitted")))
    assert PosixProcessOps().process_group_exists(4188)
    assert is_process_group_alive(4188, ops=PosixProcessOps())


def test_posix_group_probe_no_such_process_means_dead(monkeypatch) -> None:
    monkeypatch.setattr(os, "killpg", _raise(ProcessLookupError(3, "No such process")))
    assert not PosixProcessOps().process_group_exists(4188)


def test_posix_send_signal_reports_failure(monkeypatch) -> None:
    monkeypatch.setattr(os, "killpg", _raise(PermissionError(1, "Operation not permitted")))
    assert PosixProcessOps().send_signal(4188, 15) is False


def test_posix_snapshot_without_ps_raises_and_reads_idle() -> None:
    ops = PosixProcessOps(ps_path="/nonexistent/ps")
    with pytest.raises(ProcessInspectionError):
        ops.snapshot_tty("ttys003")
    assert foreground_job("/dev/ttys003", ops=ops) is None
    assert not is_busy("/dev/ttys003", ops=ops)
