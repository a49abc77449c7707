"""Configuration sources for cli-relay.

Each source yields a partial settings dictionary shaped like
``RelayConfig.model_dump()``; the loader layers them. Settings files may be
JSON or YAML, and ``RELAY_*`` environment variables override single keys.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, ClassVar

import yaml

from cli_relay.core import ConfigError, get_logger

logger = get_logger("config.sources")


class IConfigSource(ABC):
    """A layer of settings."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Read the layer.

        Returns:
            Partial settings; empty when the layer is absent.

        Raises:
            ConfigError: If the layer is present but unreadable.
        """
        ...

    @abstractmethod
    def exists(self) -> bool:
        ...


class FileSource(IConfigSource):
    """Settings file; subclasses supply the parser."""

    FORMAT: ClassVar[str] = ""
    PARSE_ERRORS: ClassVar[tuple[type[Exception], ...]] = ()

    def __init__(self, path: Path) -> None:
        self.path = path

    @abstractmethod
    def parse(self, text: str) -> Any:
        ...

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> dict[str, Any]:
        if not self.exists():
            return {}

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot read %s: %s", self.path, e)
            raise ConfigError(f"Cannot read {self.path}: {e}") from e

        if not text.strip():
            return {}

        try:
            data = self.parse(text)
        except self.PARSE_ERRORS as e:
            logger.warning("Invalid %s in %s: %s", self.FORMAT, self.path, e)
            raise ConfigError(f"Invalid {self.FORMAT} in {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"{self.FORMAT} root must be object, got {type(data).__name__} in {self.path}"
            )
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path})"


class JsonFileSource(FileSource):
    """``settings.json``."""

    FORMAT = "JSON"
    PARSE_ERRORS = (json.JSONDecodeError,)

    def parse(self, text: str) -> Any:
        return json.loads(text)


class YamlFileSource(FileSource):
    """``settings.yaml`` / ``settings.yml``."""

    FORMAT = "YAML"
    PARSE_ERRORS = (yaml.YAMLError,)

    def parse(self, text: str) -> Any:
        return yaml.safe_load(text)


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _to_int(value: str) -> int | str:
    try:
        return int(value)
    except ValueError:
        # Left as text so model validation reports it
        logger.warning("Invalid integer in environment: %s", value)
        return value


class EnvironmentSource(IConfigSource):
    """``RELAY_*`` environment variables.

    ``RELAY_TRACKED_TOOLS`` is a comma-separated list; booleans accept
    ``true/1/yes/on``.
    """

    # variable -> (section, key, converter)
    VARIABLES: ClassVar[dict[str, tuple[str, str, Callable[[str], Any]]]] = {
        "RELAY_DEFAULT_MODEL": ("stream", "default_model", str),
        "RELAY_TRACKED_TOOLS": ("stream", "tracked_tools", str),
        "RELAY_PERMISSION_MODE": ("stream", "permission_mode", str),
        "RELAY_FLUSH_PENDING_ON_CLEAR": ("stream", "flush_pending_on_clear", _to_bool),
        "RELAY_HISTORY_ENABLED": ("history", "enabled", _to_bool),
        "RELAY_HISTORY_DIR": ("history", "directory", str),
        "RELAY_SYNC_THRESHOLD": ("sync", "message_threshold", _to_int),
        "RELAY_LOG_LEVEL": ("logging", "level", str),
        "RELAY_LOG_FILE": ("logging", "file", str),
    }

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def exists(self) -> bool:
        return any(name in self._environ for name in self.VARIABLES)

    def load(self) -> dict[str, Any]:
        settings: dict[str, dict[str, Any]] = {}
        for name, (section, key, convert) in self.VARIABLES.items():
            raw = self._environ.get(name)
            if raw is None:
                continue
            settings.setdefault(section, {})[key] = convert(raw)
        return settings

    def __repr__(self) -> str:
        return "EnvironmentSource(RELAY_*)"
