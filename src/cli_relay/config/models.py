"""Configuration models for cli-relay.

This module defines Pydantic models for all configuration sections,
including validation and defaults.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cli_relay.core.types import PermissionMode


class StreamConfig(BaseModel):
    """Stream decoding configuration.

    Attributes:
        default_model: Model recorded for sessions that name none.
        tracked_tools: Tool names reported to the change tracker.
        permission_mode: Default approval mode for stderr scanning.
        flush_pending_on_clear: Decode a buffered unterminated line when a
            session is cleared instead of discarding it.
    """

    model_config = ConfigDict(validate_assignment=True)

    default_model: str = "sonnet"
    tracked_tools: list[str] = Field(default_factory=lambda: ["Edit", "Write", "Bash"])
    permission_mode: PermissionMode = PermissionMode.AUTO
    flush_pending_on_clear: bool = False

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v: str) -> str:
        """Validate that default model name is non-empty."""
        if not v or not v.strip():
            raise ValueError("Model name must be a non-empty string")
        return v.strip()

    @field_validator("tracked_tools", mode="before")
    @classmethod
    def split_tracked_tools(cls, v: object) -> object:
        """Accept a comma-separated string (as set from the environment)."""
        if isinstance(v, str):
            return [tool.strip() for tool in v.split(",") if tool.strip()]
        return v


class HistoryConfig(BaseModel):
    """History persistence configuration.

    Attributes:
        enabled: Whether messages are written to history.
        directory: JSONL directory. Uses the XDG data directory if None.
        max_workers: Thread pool size for history I/O.
    """

    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    directory: Path | None = None
    max_workers: int = Field(default=2, ge=1, le=16)


class SyncConfig(BaseModel):
    """Change synchronization trigger configuration.

    Attributes:
        message_threshold: Finished messages per project before a sync is due.
    """

    model_config = ConfigDict(validate_assignment=True)

    message_threshold: int = Field(default=5, ge=1, le=1000)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Console log level name.
        file: Optional log file path (rotated).
    """

    model_config = ConfigDict(validate_assignment=True)

    level: str = "WARNING"
    file: Path | None = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate the level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.strip().upper()
        if level not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid: {', '.join(sorted(valid_levels))}")
        return level


class RelayConfig(BaseModel):
    """Root configuration model.

    Attributes:
        stream: Stream decoding settings.
        history: History persistence settings.
        sync: Sync trigger settings.
        logging: Logging settings.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="ignore",  # Ignore unknown fields
    )

    stream: StreamConfig = Field(default_factory=StreamConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
