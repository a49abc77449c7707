"""Decoding of stream-json lines into typed envelopes.

The assistant process, when started with ``--output-format stream-json``,
writes one JSON object per line. The outer ``type`` selects the envelope
kind; ``stream_event`` envelopes nest an ``event`` object whose own
``type`` carries the incremental message protocol::

    {"type": "stream_event", "event": {"type": "content_block_delta",
     "delta": {"type": "text_delta", "text": "Hel"}}}

Tags are parsed into closed enums. Tags that are not recognised map to an
explicit ``UNKNOWN`` member instead of failing, so newer process versions
degrade to "ignored" rather than "broken".
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cli_relay.core.errors import DecodeError


class _TaggedEnum(str, Enum):
    """String enum with a tolerant parser."""

    @classmethod
    def parse(cls, value: Any) -> Any:
        """Return the member for ``value`` or ``UNKNOWN``."""
        try:
            return cls(value)
        except (ValueError, TypeError):
            return cls["UNKNOWN"]


class EnvelopeType(_TaggedEnum):
    """Outer envelope kinds."""

    SYSTEM = "system"
    STREAM_EVENT = "stream_event"
    ASSISTANT = "assistant"
    USER = "user"
    RESULT = "result"
    UNKNOWN = "unknown"


class StreamEventKind(_TaggedEnum):
    """Inner event kinds of a ``stream_event`` envelope."""

    MESSAGE_START = "message_start"
    CONTENT_BLOCK_START = "content_block_start"
    CONTENT_BLOCK_DELTA = "content_block_delta"
    CONTENT_BLOCK_STOP = "content_block_stop"
    MESSAGE_STOP = "message_stop"
    UNKNOWN = "unknown"


class ContentBlockType(_TaggedEnum):
    """Content block kinds announced by ``content_block_start``."""

    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    UNKNOWN = "unknown"


class DeltaType(_TaggedEnum):
    """Delta kinds carried by ``content_block_delta``."""

    TEXT_DELTA = "text_delta"
    INPUT_JSON_DELTA = "input_json_delta"
    UNKNOWN = "unknown"


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class Envelope:
    """One decoded stream-json record.

    Attributes:
        type: Parsed outer kind.
        raw_type: The ``type`` tag exactly as received (for logging).
        data: The full decoded object.
    """

    type: EnvelopeType
    raw_type: Any
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def event(self) -> dict[str, Any]:
        """Nested event object of a ``stream_event`` envelope."""
        return _as_dict(self.data.get("event"))

    @property
    def event_kind(self) -> StreamEventKind:
        """Parsed inner kind of a ``stream_event`` envelope."""
        return StreamEventKind.parse(self.event.get("type"))

    @property
    def content_block(self) -> dict[str, Any]:
        return _as_dict(self.event.get("content_block"))

    @property
    def delta(self) -> dict[str, Any]:
        return _as_dict(self.event.get("delta"))

    @property
    def message_content(self) -> list[dict[str, Any]]:
        """Content blocks of an ``assistant`` or ``user`` envelope."""
        message = _as_dict(self.data.get("message"))
        content = message.get("content")
        if not isinstance(content, list):
            return []
        return [block for block in content if isinstance(block, dict)]

    @property
    def usage(self) -> dict[str, Any]:
        """Usage object of a ``result`` envelope."""
        return _as_dict(self.data.get("usage"))


def decode_line(line: str) -> Envelope:
    """Decode one stripped line as a stream-json envelope.

    Args:
        line: A single line without its trailing newline.

    Returns:
        The decoded envelope. Objects with an unrecognised ``type`` decode
        to ``EnvelopeType.UNKNOWN``.

    Raises:
        DecodeError: If the line is not JSON or not a JSON object.
    """
    try:
        data = json.loads(line)
    except (json.JSONDecodeError, RecursionError) as e:
        raise DecodeError(f"Not a JSON line: {e}", line) from e

    if not isinstance(data, dict):
        raise DecodeError(
            f"Envelope root must be object, got {type(data).__name__}", line
        )

    raw_type = data.get("type")
    return Envelope(type=EnvelopeType.parse(raw_type), raw_type=raw_type, data=data)
