"""Per-session reassembly of newline-terminated lines from raw chunks."""

from __future__ import annotations

import codecs
import threading


class LineReassembler:
    """Split an append-only chunk stream into complete lines.

    Each session keeps the trailing unterminated segment of the last chunk.
    Feeding chunks and joining the returned lines with ``"\\n"`` (plus the
    pending tail) reproduces exactly the text received so far.

    Byte chunks are decoded incrementally as UTF-8, so a multi-byte
    character split across two chunks is reassembled rather than replaced.
    Undecodable bytes become U+FFFD, as do the bytes of an incomplete
    character when a text chunk follows them.

    Thread-safe: the table of tails is guarded by a lock. Callers are
    still expected to feed one session's chunks in arrival order.

    Example:
        ```python
        lines = LineReassembler()
        lines.feed("s1", '{"type": "sys')   # []
        lines.feed("s1", 'tem"}\\n{"a')      # ['{"type": "system"}']
        lines.pending("s1")                 # '{"a'
        ```
    """

    ENCODING = "utf-8"

    def __init__(self) -> None:
        self._tails: dict[str, str] = {}
        self._decoders: dict[str, codecs.IncrementalDecoder] = {}
        self._lock = threading.Lock()

    def _decode(self, session_id: str, chunk: bytes) -> str:
        decoder = self._decoders.get(session_id)
        if decoder is None:
            decoder = codecs.getincrementaldecoder(self.ENCODING)(errors="replace")
            self._decoders[session_id] = decoder
        return decoder.decode(chunk)

    def _flush_decoder(self, session_id: str) -> str:
        # A text chunk cannot complete a partial byte sequence
        decoder = self._decoders.pop(session_id, None)
        return decoder.decode(b"", final=True) if decoder is not None else ""

    def feed(self, session_id: str, chunk: bytes | str) -> list[str]:
        """Append a chunk and return every line it completed.

        Args:
            session_id: Session the chunk belongs to.
            chunk: Raw bytes or text received from the process.

        Returns:
            Complete lines in receipt order, without their newline.
        """
        with self._lock:
            if isinstance(chunk, bytes):
                text = self._decode(session_id, chunk)
            else:
                text = self._flush_decoder(session_id) + chunk
            buffered = self._tails.get(session_id, "") + text
            *lines, tail = buffered.split("\n")
            self._tails[session_id] = tail
        return lines

    def pending(self, session_id: str) -> str:
        """Return the buffered unterminated tail for a session."""
        with self._lock:
            return self._tails.get(session_id, "")

    def discard(self, session_id: str) -> str:
        """Drop a session's buffer and return the tail that was lost."""
        with self._lock:
            self._decoders.pop(session_id, None)
            return self._tails.pop(session_id, "")

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._tails

    def __len__(self) -> int:
        with self._lock:
            return len(self._tails)
