"""Tests for logger_config module."""

import logging
import os
from pathlib import Path
from unittest import mock

import pytest

from btbk_import.logger_config import (
    DEFAULT_FORMAT,
    build_logging_config,
    get_log_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back the way it was after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestGetLogLevel:
    """Tests for get_log_level function."""

    def test_default_is_info(self):
        """Test that default log level is INFO when env var not set."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert get_log_level() == logging.INFO

    @pytest.mark.parametrize(
        "name,level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARNING", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("CRITICAL", logging.CRITICAL),
        ],
    )
    def test_named_levels(self, name, level):
        with mock.patch.dict(os.environ, {"LOG_LEVEL": name}):
            assert get_log_level() == level

    def test_case_insensitive(self):
        """Test that log level parsing is case-insensitive."""
        with mock.patch.dict(os.environ, {"LOG_LEVEL": "debug"}):
            assert get_log_level() == logging.DEBUG

    def test_invalid_falls_back_to_info(self):
        with mock.patch.dict(os.environ, {"LOG_LEVEL": "LOUD"}):
            assert get_log_level() == logging.INFO

    def test_non_level_attribute_falls_back(self):
        # logging.getLogger exists but is not a level
        with mock.patch.dict(os.environ, {"LOG_LEVEL": "getLogger"}):
            assert get_log_level() == logging.INFO


class TestBuildLoggingConfig:
    """Tests for the dictConfig payload."""

    def test_console_only(self):
        config = build_logging_config(logging.DEBUG)

        assert config["root"]["handlers"] == ["console"]
        assert config["root"]["level"] == logging.DEBUG
        assert config["formatters"]["standard"]["format"] == DEFAULT_FORMAT
        assert config["disable_existing_loggers"] is False

    def test_access_log_quieted(self):
        config = build_logging_config(logging.DEBUG)
        assert config["loggers"]["uvicorn.access"]["level"] == logging.WARNING

        config = build_logging_config(logging.ERROR)
        assert config["loggers"]["uvicorn.access"]["level"] == logging.ERROR

    def test_file_handler(self, tmp_path: Path):
        log_file = str(tmp_path / "import.log")

        config = build_logging_config(logging.INFO, log_file=log_file)

        assert config["root"]["handlers"] == ["console", "file"]
        assert config["handlers"]["file"]["filename"] == log_file
        assert config["handlers"]["file"]["class"] == "logging.handlers.RotatingFileHandler"


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_sets_root_level(self):
        setup_logging(level=logging.WARNING)
        assert logging.getLogger().level == logging.WARNING

    def test_reads_env_level(self):
        with mock.patch.dict(os.environ, {"LOG_LEVEL": "ERROR"}):
            setup_logging()
        assert logging.getLogger().level == logging.ERROR

    def test_repeated_calls_do_not_stack_handlers(self):
        setup_logging(level=logging.INFO)
        setup_logging(level=logging.INFO)

        assert len(logging.getLogger().handlers) == 1

    def test_log_file_from_env(self, tmp_path: Path):
        log_file = tmp_path / "import.log"
        with mock.patch.dict(os.environ, {"BTBK_IMPORT_LOG_FILE": str(log_file)}):
            setup_logging(level=logging.INFO)

        logging.getLogger("btbk_import.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to file" in log_file.read_text(encoding="utf-8")

    def test_custom_format(self):
        setup_logging(level=logging.INFO, format_string="%(message)s")

        handler = logging.getLogger().handlers[0]
        assert handler.formatter._fmt == "%(message)s"
