"""Unit tests for LineReassembler."""

from __future__ import annotations

import pytest

from cli_relay.stream.lines import LineReassembler


class TestLineReassembler:
    """Tests for per-session line reassembly."""

    @pytest.fixture
    def lines(self) -> LineReassembler:
        return LineReassembler()

    def test_complete_lines(self, lines: LineReassembler) -> None:
        assert lines.feed("s", "a\nb\n") == ["a", "b"]
        assert lines.pending("s") == ""

    def test_partial_line_buffered(self, lines: LineReassembler) -> None:
        assert lines.feed("s", '{"type": "sys') == []
        assert lines.pending("s") == '{"type": "sys'
        assert lines.feed("s", 'tem"}\n') == ['{"type": "system"}']
        assert lines.pending("s") == ""

    def test_empty_lines_are_kept(self, lines: LineReassembler) -> None:
        """Empty segments are returned; filtering is the caller's job."""
        assert lines.feed("s", "\n\na\n") == ["", "", "a"]

    def test_every_split_is_lossless(self, lines: LineReassembler) -> None:
        """Joining emitted lines and the tail reproduces the input."""
        text = 'first line\n{"k": "v"}\n\nlast without newline'
        for split in range(len(text) + 1):
            reassembler = LineReassembler()
            emitted = reassembler.feed("s", text[:split]) + reassembler.feed("s", text[split:])
            assert "\n".join([*emitted, reassembler.pending("s")]) == text

    def test_multibyte_split_across_chunks(self, lines: LineReassembler) -> None:
        data = "naïve 🌍\n".encode("utf-8")
        emitted: list[str] = []
        for i in range(len(data)):
            emitted += lines.feed("s", data[i : i + 1])
        assert emitted == ["naïve 🌍"]

    def test_invalid_bytes_replaced(self, lines: LineReassembler) -> None:
        assert lines.feed("s", b"ok \xff\n") == ["ok \ufffd"]

    def test_text_after_partial_bytes(self, lines: LineReassembler) -> None:
        """Bytes of an unfinished character are not lost when text follows."""
        assert lines.feed("s", b"ab" + "é".encode("utf-8")[:1]) == []
        assert lines.feed("s", "cd\n") == ["ab\ufffdcd"]
        assert lines.feed("s", b"ef\n") == ["ef"]

    def test_sessions_isolated(self, lines: LineReassembler) -> None:
        lines.feed("a", "alpha-")
        assert lines.feed("b", "beta\n") == ["beta"]
        assert lines.feed("a", "done\n") == ["alpha-done"]

    def test_discard_returns_tail(self, lines: LineReassembler) -> None:
        lines.feed("s", "unterminated")
        assert "s" in lines
        assert lines.discard("s") == "unterminated"
        assert "s" not in lines
        assert lines.discard("s") == ""

    def test_discard_resets_decoder(self, lines: LineReassembler) -> None:
        """A half-received character does not leak into the next stream."""
        lines.feed("s", "é".encode("utf-8")[:1])
        lines.discard("s")
        assert lines.feed("s", b"x\n") == ["x"]

    def test_len(self, lines: LineReassembler) -> None:
        lines.feed("a", "x")
        lines.feed("b", "y\n")
        assert len(lines) == 2
