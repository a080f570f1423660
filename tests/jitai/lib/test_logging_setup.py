"""Tests for setup_logging()."""

import json
import logging
from unittest.mock import patch

import pytest
import structlog

from jitai.lib.logging import SERVICE_NAME, setup_logging


def _render(message: str, *args) -> str:
    """Format a stdlib record through the installed root handler."""
    record = logging.LogRecord("jitai.services.engine", logging.INFO, __file__, 1, message, args, None)
    return logging.getLogger().handlers[0].formatter.format(record)


def test_setup_logging_installs_single_structlog_handler() -> None:
    setup_logging()
    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)


def test_setup_logging_respects_level_override() -> None:
    setup_logging(level="debug")
    assert logging.getLogger().level == logging.DEBUG
    setup_logging(level="INFO")


def test_setup_logging_quiets_noisy_loggers() -> None:
    with patch.dict("os.environ", {"JITAI_DEV_MODE": "0"}):
        setup_logging()
    assert logging.getLogger("aiosqlite").level == logging.WARNING


class TestRendering:
    def test_json_lines_by_default(self) -> None:
        with patch.dict("os.environ", {"JITAI_DEV_MODE": "0"}):
            setup_logging()
        line = json.loads(_render("Decision %s", "INTERVENE_NOW"))
        assert line["event"] == "Decision INTERVENE_NOW"
        assert line["level"] == "info"
        assert line["logger"] == "jitai.services.engine"
        assert line["service"] == SERVICE_NAME
        assert "timestamp" in line

    def test_console_in_dev_mode(self) -> None:
        with patch.dict("os.environ", {"JITAI_DEV_MODE": "1"}):
            setup_logging()
        line = _render("Decision %s", "SKIP")
        assert "Decision SKIP" in line
        with pytest.raises(json.JSONDecodeError):
            json.loads(line)
        setup_logging(json_logs=True)

    def test_explicit_choice_overrides_env(self) -> None:
        with patch.dict("os.environ", {"JITAI_DEV_MODE": "1"}):
            setup_logging(json_logs=True)
        assert json.loads(_render("Burden reset"))["event"] == "Burden reset"
