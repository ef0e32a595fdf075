from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from termkeeper.engine import logging_setup
from termkeeper.engine.config import TerminatorConfig
from termkeeper.engine.logging_setup import LOG_FILE_NAME, configure_logging


@pytest.fixture(autouse=True)
def reset_termkeeper_logger():
    yield
    root = logging.getLogger("termkeeper")
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


def test_configure_logging_writes_rotating_file(tmp_path: Path) -> None:
    logger = configure_logging(TerminatorConfig(log_dir=tmp_path, log_level="info"))

    assert logger.name == "termkeeper"
    assert logger.level == logging.INFO
    file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 2_000_000
    assert file_handlers[0].backupCount == 5

    logging.getLogger("termkeeper.shared.services.log_tail").info("hello from tail")
    for handler in logger.handlers:
        handler.flush()
    text = (tmp_path / LOG_FILE_NAME).read_text()
    assert "INFO termkeeper.shared.services.log_tail [pid=" in text
    assert "hello from tail" in text


def test_verbose_forces_debug(tmp_path: Path) -> None:
    logger = configure_logging(
        TerminatorConfig(log_dir=tmp_path, log_level="ERROR"), verbose=True
    )
    assert logger.level == logging.DEBUG


def test_reconfiguring_replaces_handlers(tmp_path: Path) -> None:
    config = TerminatorConfig(log_dir=tmp_path)
    configure_logging(config)
    logger = configure_logging(config)
    assert len(logger.handlers) == 2


def test_stderr_only(tmp_path: Path) -> None:
    logger = configure_logging(TerminatorConfig(log_dir=tmp_path / "logs"), to_file=False)
    assert not any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
    assert not (tmp_path / "logs").exists()


def test_unwritable_log_dir_falls_back_to_temp(tmp_path: Path, monkeypatch, capsys) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    fallback = tmp_path / "fallback"
    monkeypatch.setattr(logging_setup, "system_temp_log_dir", lambda: fallback)

    configure_logging(TerminatorConfig(log_dir=blocker / "logs"))

    assert (fallback / LOG_FILE_NAME).exists()
    assert "Could not create log directory" in capsys.readouterr().err
