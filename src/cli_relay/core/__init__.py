"""Core package containing interfaces, types, and errors."""

from cli_relay.core.errors import (
    ConfigError,
    DecodeError,
    HistoryError,
    RelayError,
)
from cli_relay.core.interfaces import IChangeTracker, IHistoryStore, ISyncTrigger
from cli_relay.core.logging import get_logger, setup_logging
from cli_relay.core.types import (
    HistoryMessage,
    MessageRole,
    PermissionMode,
    PermissionRequest,
    StreamEvent,
    StreamEventType,
    TokenUsage,
)

__all__ = [
    "ConfigError",
    "DecodeError",
    "HistoryError",
    "HistoryMessage",
    "IChangeTracker",
    "IHistoryStore",
    "ISyncTrigger",
    "MessageRole",
    "PermissionMode",
    "PermissionRequest",
    "RelayError",
    "StreamEvent",
    "StreamEventType",
    "TokenUsage",
    "get_logger",
    "setup_logging",
]
