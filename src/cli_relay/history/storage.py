"""JSONL persistence for conversation history."""

from __future__ import annotations

import contextlib
import json
import os
import re
import threading
from pathlib import Path

from cli_relay.core.errors import HistoryError
from cli_relay.core.logging import get_logger
from cli_relay.core.types import HistoryMessage

logger = get_logger("history.storage")

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


class HistoryStorageError(HistoryError):
    """Error during history storage operations."""

    pass


class HistoryCorruptedError(HistoryStorageError):
    """A history file contains no readable message."""

    pass


class JsonlHistoryStorage:
    """Append-only history files, one JSON message per line.

    Each session is stored as ``<storage_dir>/<session_id>.jsonl``.
    Appends are serialized with a lock so concurrent writers never
    interleave partial lines.

    Attributes:
        storage_dir: Directory where history files are stored.
    """

    DEFAULT_DIR_NAME = "history"
    HISTORY_EXTENSION = ".jsonl"

    def __init__(self, storage_dir: Path | str | None = None) -> None:
        """Initialize history storage.

        Args:
            storage_dir: Directory for history files. Uses default if None.
        """
        if storage_dir is None:
            storage_dir = self.get_default_dir()
        elif isinstance(storage_dir, str):
            storage_dir = Path(storage_dir)

        self.storage_dir = storage_dir
        self._lock = threading.Lock()
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        # Owner only
        with contextlib.suppress(OSError):
            self.storage_dir.chmod(0o700)

    @classmethod
    def get_default_dir(cls) -> Path:
        """Get the default history directory.

        Returns:
            ``$XDG_DATA_HOME/relay/history`` or ``~/.local/share/relay/history``.
        """
        xdg_data = os.environ.get("XDG_DATA_HOME")
        if xdg_data:
            base = Path(xdg_data)
        else:
            base = Path.home() / ".local" / "share"

        return base / "relay" / cls.DEFAULT_DIR_NAME

    def get_path(self, session_id: str) -> Path:
        """Get the history file path for a session.

        Raises:
            HistoryStorageError: If the session id is not a safe file name.
        """
        if not _SAFE_ID.match(session_id) or session_id in (".", ".."):
            raise HistoryStorageError(f"Invalid session id for history: {session_id!r}")
        return self.storage_dir / f"{session_id}{self.HISTORY_EXTENSION}"

    def exists(self, session_id: str) -> bool:
        return self.get_path(session_id).exists()

    def append(self, message: HistoryMessage) -> None:
        """Append one message to its session's history file.

        Raises:
            HistoryStorageError: If the message cannot be written.
        """
        path = self.get_path(message.session_id)
        line = json.dumps(message.to_dict(), ensure_ascii=False) + "\n"

        try:
            with self._lock, path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise HistoryStorageError(f"Failed to append history: {e}") from e

        with contextlib.suppress(OSError):
            path.chmod(0o600)
        logger.debug("Appended %s message to %s", message.role.value, path.name)

    def load(self, session_id: str) -> list[HistoryMessage]:
        """Load every readable message of a session, oldest first.

        Unreadable lines are skipped and logged.

        Returns:
            Messages in file order; empty if the session has no history.

        Raises:
            HistoryCorruptedError: If the file has lines but none is readable.
        """
        path = self.get_path(session_id)
        if not path.exists():
            return []

        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise HistoryStorageError(f"Failed to read history: {e}") from e

        messages: list[HistoryMessage] = []
        skipped = 0
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                messages.append(HistoryMessage.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning("Skipping corrupted line %d in %s: %s", number, path.name, e)

        if skipped and not messages:
            raise HistoryCorruptedError(f"History file corrupted: {session_id}")
        return messages

    def delete(self, session_id: str) -> bool:
        """Delete a session's history file.

        Returns:
            True if a file was deleted.
        """
        path = self.get_path(session_id)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error("Failed to delete history %s: %s", session_id, e)
            return False
        return True

    def list_session_ids(self) -> list[str]:
        """List every session id that has a history file."""
        return sorted(path.stem for path in self.storage_dir.glob(f"*{self.HISTORY_EXTENSION}"))
