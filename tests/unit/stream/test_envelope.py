"""Unit tests for stream-json envelope decoding."""

from __future__ import annotations

import pytest

from cli_relay.core.errors import DecodeError
from cli_relay.stream.envelope import (
    ContentBlockType,
    DeltaType,
    EnvelopeType,
    StreamEventKind,
    decode_line,
)


class TestTaggedEnums:
    """Tests for tolerant tag parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("system", EnvelopeType.SYSTEM),
            ("stream_event", EnvelopeType.STREAM_EVENT),
            ("result", EnvelopeType.RESULT),
            ("something_new", EnvelopeType.UNKNOWN),
            (None, EnvelopeType.UNKNOWN),
            (42, EnvelopeType.UNKNOWN),
        ],
    )
    def test_envelope_type(self, value, expected) -> None:
        assert EnvelopeType.parse(value) is expected

    def test_inner_kinds(self) -> None:
        assert StreamEventKind.parse("content_block_delta") is StreamEventKind.CONTENT_BLOCK_DELTA
        assert StreamEventKind.parse("message_delta") is StreamEventKind.UNKNOWN
        assert ContentBlockType.parse("tool_result") is ContentBlockType.TOOL_RESULT
        assert ContentBlockType.parse(["tool_use"]) is ContentBlockType.UNKNOWN
        assert DeltaType.parse("input_json_delta") is DeltaType.INPUT_JSON_DELTA
        assert DeltaType.parse("thinking_delta") is DeltaType.UNKNOWN


class TestDecodeLine:
    """Tests for decode_line."""

    def test_stream_event(self) -> None:
        envelope = decode_line(
            '{"type": "stream_event", "event": {"type": "content_block_delta",'
            ' "delta": {"type": "text_delta", "text": "Hi"}}}'
        )
        assert envelope.type is EnvelopeType.STREAM_EVENT
        assert envelope.event_kind is StreamEventKind.CONTENT_BLOCK_DELTA
        assert envelope.delta == {"type": "text_delta", "text": "Hi"}
        assert envelope.content_block == {}

    def test_unknown_type_keeps_raw_tag(self) -> None:
        envelope = decode_line('{"type": "telemetry"}')
        assert envelope.type is EnvelopeType.UNKNOWN
        assert envelope.raw_type == "telemetry"

    def test_missing_type(self) -> None:
        envelope = decode_line('{"foo": 1}')
        assert envelope.type is EnvelopeType.UNKNOWN
        assert envelope.raw_type is None

    def test_malformed_nested_fields(self) -> None:
        """Non-object nested fields read as empty."""
        envelope = decode_line('{"type": "stream_event", "event": "oops"}')
        assert envelope.event == {}
        assert envelope.event_kind is StreamEventKind.UNKNOWN
        assert envelope.delta == {}

    def test_message_content(self) -> None:
        envelope = decode_line(
            '{"type": "user", "message": {"content": [{"type": "tool_result"}, "text", 3]}}'
        )
        assert envelope.message_content == [{"type": "tool_result"}]

    def test_message_content_string(self) -> None:
        envelope = decode_line('{"type": "user", "message": {"content": "plain"}}')
        assert envelope.message_content == []

    def test_usage(self) -> None:
        envelope = decode_line('{"type": "result", "usage": {"input_tokens": 5}}')
        assert envelope.usage == {"input_tokens": 5}
        assert decode_line('{"type": "result"}').usage == {}

    def test_invalid_json(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_line("Resuming session...")
        assert exc_info.value.line == "Resuming session..."

    @pytest.mark.parametrize("line", ["[1, 2]", '"text"', "42", "null"])
    def test_non_object_root(self, line: str) -> None:
        with pytest.raises(DecodeError, match="must be object"):
            decode_line(line)
