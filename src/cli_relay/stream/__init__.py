"""Stream decoding package.

Turns the stdout/stderr byte streams of an assistant process into typed
stream events, per session.

Example:
    from cli_relay.stream import STREAM_EVENT, StreamHandler

    handler = StreamHandler()
    handler.on(STREAM_EVENT, on_event)
    handler.initialize_session("s1", "Hello", "/work/project")
    handler.handle_stdout(chunk, "s1")
"""

from .emitter import PERMISSION_REQUEST_EVENT, STREAM_EVENT, EventEmitter
from .envelope import (
    ContentBlockType,
    DeltaType,
    Envelope,
    EnvelopeType,
    StreamEventKind,
    decode_line,
)
from .handler import StreamHandler
from .lines import LineReassembler
from .permissions import (
    KNOWN_TOOLS,
    PERMISSION_PATTERNS,
    PermissionDetector,
    respond_to_permission,
)
from .session import DEFAULT_MODEL, SessionBuffer, SessionRegistry
from .telemetry import TOKEN_PATTERNS, cache_hit_rate, parse_token_usage, usage_from_result

__all__ = [
    "DEFAULT_MODEL",
    "KNOWN_TOOLS",
    "PERMISSION_PATTERNS",
    "PERMISSION_REQUEST_EVENT",
    "STREAM_EVENT",
    "TOKEN_PATTERNS",
    "ContentBlockType",
    "DeltaType",
    "Envelope",
    "EnvelopeType",
    "EventEmitter",
    "LineReassembler",
    "PermissionDetector",
    "SessionBuffer",
    "SessionRegistry",
    "StreamEventKind",
    "StreamHandler",
    "cache_hit_rate",
    "decode_line",
    "parse_token_usage",
    "respond_to_permission",
    "usage_from_result",
]
