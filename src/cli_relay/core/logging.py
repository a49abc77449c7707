"""Logging setup for cli-relay.

All package loggers hang off the ``cli-relay`` logger (see ``get_logger``),
so hosts embedding the handler can route or silence them in one place.
``setup_logging`` is only called by the command line.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

ROOT_LOGGER_NAME = "cli-relay"
LEVEL_ENV_VAR = "RELAY_LOG_LEVEL"

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}
DEFAULT_LEVEL = logging.WARNING

DEFAULT_LOG_FILE = Path.home() / ".relay" / "logs" / "relay.log"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_level(level: str | int | None) -> int | None:
    """Map a level name to its constant; unknown names give WARNING."""
    if level is None or isinstance(level, int):
        return level
    return LOG_LEVEL_MAP.get(level.strip().upper(), DEFAULT_LEVEL)


def get_log_level_from_env() -> int:
    """Level named by ``RELAY_LOG_LEVEL``, WARNING if unset or unknown."""
    return parse_level(os.environ.get(LEVEL_ENV_VAR, "WARNING")) or DEFAULT_LEVEL


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    # Files keep everything regardless of the console level
    handler.setLevel(logging.DEBUG)
    return handler


def _console_handler(level: int, rich_console: bool) -> logging.Handler:
    if rich_console:
        return RichHandler(
            level=level,
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    return handler


def setup_logging(
    level: int | str | None = None,
    log_file: Path | None = None,
    console_output: bool = True,
    rich_console: bool = True,
    file_logging: bool = False,
) -> None:
    """Install handlers on the ``cli-relay`` logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Console level (constant or name). Falls back to
            ``RELAY_LOG_LEVEL``, then WARNING.
        log_file: Rotating log file; giving one enables file logging.
        console_output: Log to stderr.
        rich_console: Format console output with Rich.
        file_logging: Log to ``~/.relay/logs/relay.log`` when no
            ``log_file`` is given.
    """
    console_level = parse_level(level)
    if console_level is None:
        console_level = get_log_level_from_env()

    handlers: list[logging.Handler] = []
    if log_file is not None or file_logging:
        handlers.append(_file_handler(log_file or DEFAULT_LOG_FILE))
    if console_output:
        handlers.append(_console_handler(console_level, rich_console))

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)
    for old in list(root_logger.handlers):
        root_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return the package logger ``cli-relay.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
