"""Configuration package for cli-relay."""

from cli_relay.config.loader import ConfigLoader, deep_merge
from cli_relay.config.models import (
    HistoryConfig,
    LoggingConfig,
    RelayConfig,
    StreamConfig,
    SyncConfig,
)
from cli_relay.config.sources import (
    EnvironmentSource,
    FileSource,
    IConfigSource,
    JsonFileSource,
    YamlFileSource,
)

__all__ = [
    "ConfigLoader",
    "EnvironmentSource",
    "FileSource",
    "HistoryConfig",
    "IConfigSource",
    "JsonFileSource",
    "LoggingConfig",
    "RelayConfig",
    "StreamConfig",
    "SyncConfig",
    "YamlFileSource",
    "deep_merge",
]
