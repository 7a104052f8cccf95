"""Tests for the logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from confab.utils import logging as logging_utils


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)


def test_setup_logging_writes_rotating_file(tmp_path: Path, restore_root_logging) -> None:
    log_path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False, force=True)

    logging.getLogger("confab.test").debug("hello log")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == tmp_path / "confab.log"
    assert logging_utils.get_log_path() == log_path
    assert "hello log" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_honours_environment_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logging
) -> None:
    monkeypatch.setenv("CONFAB_LOG_DIR", str(tmp_path / "env-logs"))

    log_path = logging_utils.setup_logging(logging.INFO, console=False, force=True)

    assert log_path == tmp_path / "env-logs" / "confab.log"


def test_setup_logging_masks_secrets(tmp_path: Path, restore_root_logging) -> None:
    log_path = logging_utils.setup_logging(
        logging.INFO, log_dir=tmp_path, console=False, secrets=("sk-ant-abcdef",), force=True
    )

    logging.getLogger("confab.test").warning("key was %s", "sk-ant-abcdef")
    for handler in logging.getLogger().handlers:
        handler.flush()

    contents = log_path.read_text(encoding="utf-8")
    assert "sk-ant-abcdef" not in contents
    assert "key was sk*********ef" in contents


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("abcdef", "ab**ef"), ("  sk-123456  ", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert logging_utils.redact_secret(value) == expected


def test_redaction_filter_without_secrets_passes_records_through() -> None:
    redaction = logging_utils.SecretRedactionFilter(["", "  "])
    record = logging.LogRecord("confab", logging.INFO, __file__, 1, "hello %s", ("world",), None)

    assert redaction.active is False
    assert redaction.filter(record) is True
    assert record.getMessage() == "hello world"
