"""Value objects shared by the stream decoder and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_millis(timestamp: datetime) -> int:
    """Convert a datetime to integer milliseconds since the epoch."""
    return int(timestamp.timestamp() * 1000)


class StreamEventType(str, Enum):
    """Kinds of events delivered to stream listeners."""

    TEXT = "text"
    TOOL_USE = "tool_use"
    THINKING = "thinking"
    ERROR = "error"
    DONE = "done"


class PermissionMode(str, Enum):
    """How the assistant process asks for tool approval."""

    AUTO = "auto"
    MANUAL = "manual"


class MessageRole(str, Enum):
    """Role of a message written to history."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class TokenUsage:
    """Token counters reported by the assistant process.

    Every counter is optional. ``None`` means the source did not report
    the counter, which is distinct from a reported ``0``.
    """

    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    @property
    def is_empty(self) -> bool:
        """True when no counter is present."""
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> dict[str, int]:
        """Serialize present counters only."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class StreamEvent:
    """A typed output unit emitted to stream listeners.

    Attributes:
        type: Event kind.
        content: Text payload (may be empty).
        timestamp: Emission time.
        token_usage: Only set on ``done`` events.
    """

    type: StreamEventType
    content: str = ""
    timestamp: datetime = field(default_factory=now)
    token_usage: TokenUsage | None = None

    @classmethod
    def text(cls, content: str) -> StreamEvent:
        return cls(StreamEventType.TEXT, content)

    @classmethod
    def tool_use(cls, content: str) -> StreamEvent:
        return cls(StreamEventType.TOOL_USE, content)

    @classmethod
    def thinking(cls, content: str) -> StreamEvent:
        return cls(StreamEventType.THINKING, content)

    @classmethod
    def error(cls, content: str) -> StreamEvent:
        return cls(StreamEventType.ERROR, content)

    @classmethod
    def done(cls, token_usage: TokenUsage | None = None) -> StreamEvent:
        return cls(StreamEventType.DONE, "", token_usage=token_usage)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape consumed by UI clients."""
        data: dict[str, Any] = {
            "type": self.type.value,
            "content": self.content,
            "timestamp": to_millis(self.timestamp),
        }
        if self.token_usage is not None:
            data["tokenUsage"] = self.token_usage.to_dict()
        return data


@dataclass(frozen=True)
class PermissionRequest:
    """A tool-approval prompt detected on the assistant's stderr."""

    id: str
    session_id: str
    tool_name: str
    action: str
    timestamp: datetime = field(default_factory=now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape consumed by UI clients."""
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "toolName": self.tool_name,
            "action": self.action,
            "timestamp": to_millis(self.timestamp),
        }


@dataclass
class HistoryMessage:
    """A finished message handed to the history store."""

    session_id: str
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=now)
    project_path: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "timestamp": to_millis(self.timestamp),
            "role": self.role.value,
            "content": self.content,
        }
        if self.project_path is not None:
            data["projectPath"] = self.project_path
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryMessage:
        """Deserialize from dictionary."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, (int, float)):
            ts = datetime.fromtimestamp(timestamp / 1000, UTC)
        elif isinstance(timestamp, str):
            ts = datetime.fromisoformat(timestamp)
        else:
            ts = now()

        return cls(
            session_id=data["sessionId"],
            role=MessageRole(data.get("role", "user")),
            content=data.get("content", ""),
            timestamp=ts,
            project_path=data.get("projectPath"),
            metadata=data.get("metadata"),
        )
