"""Unit tests for logging setup."""

from __future__ import annotations

import logging
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from rich.logging import RichHandler

from cli_relay.core.logging import (
    ROOT_LOGGER_NAME,
    get_log_level_from_env,
    get_logger,
    parse_level,
    setup_logging,
)


@pytest.fixture
def root_logger() -> Generator[logging.Logger, None, None]:
    """The package root logger, restored after the test."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestLogLevel:
    """Tests for level resolution."""

    def test_env_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAY_LOG_LEVEL", "debug")
        assert get_log_level_from_env() == logging.DEBUG

    def test_env_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("RELAY_LOG_LEVEL", raising=False)
        assert get_log_level_from_env() == logging.WARNING

    def test_env_invalid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAY_LOG_LEVEL", "chatty")
        assert get_log_level_from_env() == logging.WARNING

    def test_parse_level(self) -> None:
        assert parse_level("info") == logging.INFO
        assert parse_level(logging.ERROR) == logging.ERROR
        assert parse_level(None) is None


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_rich_console_handler(self, root_logger: logging.Logger) -> None:
        setup_logging(level="INFO")

        assert len(root_logger.handlers) == 1
        handler = root_logger.handlers[0]
        assert isinstance(handler, RichHandler)
        assert handler.level == logging.INFO

    def test_plain_console_handler(self, root_logger: logging.Logger) -> None:
        setup_logging(level=logging.ERROR, rich_console=False)

        handler = root_logger.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert not isinstance(handler, RichHandler)
        assert handler.level == logging.ERROR

    def test_file_handler(self, root_logger: logging.Logger, temp_dir: Path) -> None:
        log_file = temp_dir / "logs" / "relay.log"
        setup_logging(log_file=log_file, console_output=False)

        assert [type(h) for h in root_logger.handlers] == [RotatingFileHandler]
        get_logger("test").info("written to file")
        root_logger.handlers[0].flush()
        assert "written to file" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_replaces_handlers(self, root_logger: logging.Logger) -> None:
        setup_logging(level="INFO")
        setup_logging(level="DEBUG")
        assert len(root_logger.handlers) == 1

    def test_get_logger_prefix(self) -> None:
        assert get_logger("stream.handler").name == "cli-relay.stream.handler"
