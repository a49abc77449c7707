"""Layered configuration loading for cli-relay.

Layers, lowest precedence first:

1. ``RelayConfig`` defaults
2. user settings: ``~/.relay/settings.json`` (or ``settings.yaml``)
3. project settings: ``./.relay/settings.json`` (or ``settings.yaml``)
4. ``RELAY_*`` environment variables

A layer that cannot be read is skipped with a log message; the merged
result must validate as a whole.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cli_relay.config.models import RelayConfig
from cli_relay.config.sources import (
    EnvironmentSource,
    FileSource,
    IConfigSource,
    JsonFileSource,
    YamlFileSource,
)
from cli_relay.core import ConfigError, get_logger

logger = get_logger("config.loader")

SETTINGS_NAMES: tuple[tuple[str, type[FileSource]], ...] = (
    ("settings.json", JsonFileSource),
    ("settings.yaml", YamlFileSource),
    ("settings.yml", YamlFileSource),
)


def deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; inputs are not modified.

    Nested mappings merge key by key, anything else is replaced.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigLoader:
    """Build a ``RelayConfig`` from defaults, settings files and environment.

    The first successful load is cached in ``config``; ``reload()``
    replaces it only when the new layers validate.
    """

    def __init__(
        self,
        user_dir: Path | None = None,
        project_dir: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the loader.

        Args:
            user_dir: Directory holding user settings. Defaults to ~/.relay
            project_dir: Directory holding project settings. Defaults to ./.relay
            environ: Environment mapping. Defaults to os.environ.
        """
        self.user_dir = user_dir or Path.home() / ".relay"
        self.project_dir = project_dir or Path.cwd() / ".relay"
        self._environ = environ
        self._config: RelayConfig | None = None
        self._lock = threading.Lock()

    @property
    def config(self) -> RelayConfig:
        with self._lock:
            if self._config is None:
                self._config = self.load_all()
            return self._config

    def sources(self) -> list[IConfigSource]:
        """Layers in ascending precedence."""
        return [
            self.settings_source(self.user_dir),
            self.settings_source(self.project_dir),
            EnvironmentSource(self._environ),
        ]

    @staticmethod
    def settings_source(directory: Path) -> FileSource:
        """The settings file of a directory; JSON wins over YAML."""
        for name, source_type in SETTINGS_NAMES:
            path = directory / name
            if path.is_file():
                return source_type(path)
        return JsonFileSource(directory / SETTINGS_NAMES[0][0])

    def load_all(self) -> RelayConfig:
        """Merge every layer and validate.

        Raises:
            ConfigError: If the merged settings are invalid.
        """
        settings = RelayConfig().model_dump()
        for source in self.sources():
            settings = deep_merge(settings, self._read(source))

        try:
            return RelayConfig.model_validate(settings)
        except ValidationError as e:
            logger.error("Configuration validation failed: %s", e)
            raise ConfigError(f"Configuration validation failed: {e}") from e

    def _read(self, source: IConfigSource) -> dict[str, Any]:
        if not source.exists():
            return {}
        try:
            layer = source.load()
        except ConfigError as e:
            logger.debug("Skipped config source %s: %s", source, e)
            return {}
        if layer:
            logger.debug("Loaded config from %s", source)
        return layer

    def load(self, path: Path) -> dict[str, Any]:
        """Read one settings file without merging.

        Raises:
            ConfigError: If the suffix is unknown or the file is invalid.
        """
        suffix = path.suffix.lower()
        for name, source_type in SETTINGS_NAMES:
            if suffix and name.endswith(suffix):
                return source_type(path).load()
        raise ConfigError(f"Unsupported configuration format: {suffix}")

    def reload(self) -> RelayConfig:
        """Re-read every layer, keeping the current config on failure."""
        try:
            fresh = self.load_all()
        except ConfigError as e:
            logger.error("Failed to reload configuration: %s", e)
            return self.config
        with self._lock:
            self._config = fresh
        logger.info("Configuration reloaded")
        return fresh
