"""Per-session accumulator state."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace

DEFAULT_MODEL = "sonnet"


@dataclass
class SessionBuffer:
    """Mutable state of one in-flight exchange.

    Attributes:
        user_message: Prompt text, set once at initialization.
        assistant_message: Concatenation of every streamed text delta.
        project_path: Workspace directory of the session, if known.
        model: Model identifier stored with the saved reply.
    """

    user_message: str
    assistant_message: str = ""
    project_path: str | None = None
    model: str = DEFAULT_MODEL

    @property
    def has_reply(self) -> bool:
        """True when the accumulated reply has visible content."""
        return bool(self.assistant_message.strip())


@dataclass
class _SessionLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    # Callers inside or waiting in SessionRegistry.locked
    users: int = 0


class SessionRegistry:
    """Table of session buffers keyed by the caller's session id.

    Also owns one re-entrant lock per session (see ``locked``), which the
    stream handler holds while processing a chunk so that chunks of the
    same session are never decoded concurrently.

    Thread-safe: all table mutations happen under a registry lock.
    """

    def __init__(self, default_model: str = DEFAULT_MODEL) -> None:
        self.default_model = default_model
        self._sessions: dict[str, SessionBuffer] = {}
        self._locks: dict[str, _SessionLock] = {}
        self._lock = threading.Lock()

    def create(
        self,
        session_id: str,
        user_message: str,
        project_path: str | None = None,
        model: str | None = None,
    ) -> SessionBuffer:
        """Create (or replace) the buffer of a session."""
        buffer = SessionBuffer(
            user_message=user_message,
            project_path=project_path,
            model=model or self.default_model,
        )
        with self._lock:
            self._sessions[session_id] = buffer
        return buffer

    def get(self, session_id: str) -> SessionBuffer | None:
        with self._lock:
            return self._sessions.get(session_id)

    def snapshot(self, session_id: str) -> SessionBuffer | None:
        """Return a detached copy of a session's buffer."""
        with self._lock:
            buffer = self._sessions.get(session_id)
            return replace(buffer) if buffer is not None else None

    def append_text(self, session_id: str, text: str) -> bool:
        """Append a text delta to the session's reply.

        Returns:
            False if the session has no buffer (delta not accumulated).
        """
        with self._lock:
            buffer = self._sessions.get(session_id)
            if buffer is None:
                return False
            buffer.assistant_message += text
            return True

    def pop(self, session_id: str) -> SessionBuffer | None:
        """Remove a session and return its last state.

        The session's processing lock stays in place while a caller holds
        or waits for it; the last of them removes it.
        """
        with self._lock:
            entry = self._locks.get(session_id)
            if entry is not None and entry.users == 0:
                del self._locks[session_id]
            return self._sessions.pop(session_id, None)

    @contextmanager
    def locked(self, session_id: str) -> Iterator[None]:
        """Hold the processing lock of a session.

        Re-entrant. Every caller of the same session id shares one lock
        for as long as any of them is inside or waiting, even if the
        session is popped meanwhile. Once the last one leaves, the lock
        is dropped unless the session is still live.
        """
        with self._lock:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = self._locks[session_id] = _SessionLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if (
                    entry.users == 0
                    and session_id not in self._sessions
                    and self._locks.get(session_id) is entry
                ):
                    del self._locks[session_id]

    def lock_count(self) -> int:
        """Number of sessions with a processing lock."""
        with self._lock:
            return len(self._locks)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
