from __future__ import annotations

import subprocess
from pathlib import Path

from termkeeper.shared.services.log_tail import (
    MARKER_PREFIX,
    TIMEOUT_ANNOTATION,
    build_logged_command,
    new_completion_marker,
    strip_timeout_annotation,
    tail_for_marker,
)


class _StepClock:
    """Advances by one poll interval every time the tailer sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = 0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps += 1
        self.now += seconds


def test_marker_found_returns_last_lines_before_marker(tmp_path: Path) -> None:
    log = tmp_path / "out.log"
    marker = new_completion_marker()
    log.write_text("one\ntwo\nthree\nfour\nfive\n" + marker + "\n")

    result = tail_for_marker(log, marker, timeout_seconds=5, max_lines=2)

    assert not result.timed_out
    assert result.output == "four\nfive"


def test_lines_after_marker_are_ignored(tmp_path: Path) -> None:
    log = tmp_path / "out.log"
    log.write_text("a\nb\nDONE\nlate output\n")
    result = tail_for_marker(log, "DONE", timeout_seconds=5, max_lines=10)
    assert result.output == "a\nb"


def test_non_positive_max_lines_means_no_cap(tmp_path: Path) -> None:
    log = tmp_path / "out.log"
    log.write_text("\n".join(str(i) for i in range(50)) + "\nDONE\n")
    result = tail_for_marker(log, "DONE", timeout_seconds=5, max_lines=0)
    assert result.output.splitlines() == [str(i) for i in range(50)]


def test_timeout_appends_annotation(tmp_path: Path) -> None:
    log = tmp_path / "out.log"
    log.write_text("still going\n")

    result = tail_for_marker(log, "NEVER_WRITTEN", timeout_seconds=1, max_lines=10)

    assert result.timed_out
    assert result.output == f"still going\n{TIMEOUT_ANNOTATION}"


def test_timeout_caps_partial_output(tmp_path: Path) -> None:
    log = tmp_path / "out.log"
    log.write_text("1\n2\n3\n4\n")
    clock = _StepClock()

    result = tail_for_marker(
        log, "X_MARKER", timeout_seconds=1, max_lines=2,
        poll_interval=0.25, sleep=clock.sleep, clock=clock,
    )

    assert result.timed_out
    assert result.output == f"3\n4\n{TIMEOUT_ANNOTATION}"
    assert clock.sleeps == 4


def test_missing_file_on_timeout(tmp_path: Path) -> None:
    log = tmp_path / "missing.log"
    clock = _StepClock()

    result = tail_for_marker(
        log, "DONE", timeout_seconds=0.5, max_lines=10,
        sleep=clock.sleep, clock=clock,
    )

    assert result.timed_out
    assert result.output == f"Log file {log} not found or empty after timeout."


def test_file_appearing_mid_wait_is_picked_up(tmp_path: Path) -> None:
    log = tmp_path / "late.log"
    clock = _StepClock()

    def sleep(seconds: float) -> None:
        clock.sleep(seconds)
        if clock.sleeps == 3:
            log.write_text("hello\nDONE\n")

    result = tail_for_marker(
        log, "DONE", timeout_seconds=5, max_lines=10, sleep=sleep, clock=clock,
    )
    assert not result.timed_out
    assert result.output == "hello"


def test_strip_timeout_annotation() -> None:
    assert strip_timeout_annotation(f"out\n{TIMEOUT_ANNOTATION}") == "out"
    assert strip_timeout_annotation(TIMEOUT_ANNOTATION) == ""
    assert strip_timeout_annotation("plain") == "plain"


def test_new_completion_marker_is_unique() -> None:
    a, b = new_completion_marker(), new_completion_marker()
    assert a != b
    assert a.startswith(MARKER_PREFIX)


def test_foreground_command_writes_output_then_marker(tmp_path: Path) -> None:
    log = tmp_path / "fg.log"
    marker = new_completion_marker()
    line = build_logged_command("echo hi; echo err >&2", log, marker)

    subprocess.run(["bash", "-c", line], check=True, timeout=10)

    lines = log.read_text().splitlines()
    assert lines[-1] == marker
    assert set(lines[:-1]) == {"hi", "err"}
    assert tail_for_marker(log, marker, 5, 10).output in ("hi\nerr", "err\nhi")


def test_background_command_has_no_marker() -> None:
    line = build_logged_command("sleep 100", "/tmp/x.log", "M", foreground=False)
    assert line == "( ( sleep 100 ) > /tmp/x.log 2>&1 ) & disown"
    assert "echo" not in line


def test_log_path_with_spaces_is_quoted() -> None:
    line = build_logged_command("true", "/tmp/my logs/x.log", "M")
    assert "'/tmp/my logs/x.log'" in line


def test_zero_timeout_still_finds_marker(tmp_path: Path) -> None:
    log = tmp_path / "done.log"
    log.write_text("a\nb\nMARK_123\n")

    result = tail_for_marker(log, "MARK_123", timeout_seconds=0, max_lines=10)

    assert not result.timed_out
    assert result.output == "a\nb"
    assert "MARK_123" not in result.output


def test_marker_written_after_last_poll_is_found(tmp_path: Path) -> None:
    log = tmp_path / "race.log"
    log.write_text("working\n")
    clock = _StepClock()

    def racing_clock() -> float:
        # Marker lands on the deadline check that ends polling.
        if clock.now >= 1.0:
            log.write_text("working\nMARK_9\n")
        return clock()

    result = tail_for_marker(
        log, "MARK_9", timeout_seconds=1, max_lines=10,
        poll_interval=0.25, sleep=clock.sleep, clock=racing_clock,
    )

    assert not result.timed_out
    assert result.output == "working"
    assert "MARK_9" not in result.output
