"""Message-count trigger for project synchronization."""

from __future__ import annotations

import threading
from collections.abc import Callable

from cli_relay.core.interfaces import ISyncTrigger
from cli_relay.core.logging import get_logger

logger = get_logger("tracking.sync")

SyncCallback = Callable[[str, str], None]


class MessageCounter(ISyncTrigger):
    """Count finished messages per project and fire at a threshold.

    When a project reaches ``threshold`` messages the optional callback is
    invoked with ``(project_path, session_id)`` and the count restarts.
    Callback failures are logged.

    Thread-safe: counts are guarded by a lock; the callback runs outside it.
    """

    def __init__(self, threshold: int = 5, on_sync: SyncCallback | None = None) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.on_sync = on_sync
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def record_message(self, project_path: str, session_id: str) -> None:
        with self._lock:
            count = self._counts.get(project_path, 0) + 1
            due = count >= self.threshold
            self._counts[project_path] = 0 if due else count

        logger.debug("Message count: %d/%d for %s", count, self.threshold, project_path)
        if not due:
            return

        logger.info("Message count trigger reached (%d) for %s", count, project_path)
        if self.on_sync is not None:
            try:
                self.on_sync(project_path, session_id)
            except Exception as e:
                logger.error("Sync callback failed for %s: %s", project_path, e)

    def count(self, project_path: str) -> int:
        """Messages recorded since the last trigger."""
        with self._lock:
            return self._counts.get(project_path, 0)

    def should_sync(self, project_path: str) -> bool:
        """True if the next message will reach the threshold."""
        return self.count(project_path) + 1 >= self.threshold

    def reset(self, project_path: str | None = None) -> None:
        """Reset one project's count, or every count."""
        with self._lock:
            if project_path is None:
                self._counts.clear()
            else:
                self._counts.pop(project_path, None)
