"""In-memory record of file-mutating tool calls."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cli_relay.core.interfaces import IChangeTracker
from cli_relay.core.logging import get_logger
from cli_relay.core.types import now

logger = get_logger("tracking.changes")


@dataclass(frozen=True)
class ToolCallRecord:
    """One recorded tool call."""

    session_id: str
    tool_name: str
    timestamp: datetime = field(default_factory=now)


class ChangeTracker(IChangeTracker):
    """Collect tool calls per project until a sync consumes them.

    Thread-safe: uses a lock for all mutations.
    """

    def __init__(self) -> None:
        self._records: dict[str, list[ToolCallRecord]] = {}
        self._lock = threading.Lock()

    def record_tool_call(self, project_path: str, session_id: str, tool_name: str) -> None:
        with self._lock:
            self._records.setdefault(project_path, []).append(
                ToolCallRecord(session_id=session_id, tool_name=tool_name)
            )
        logger.debug("Tool call recorded: %s in %s", tool_name, project_path)

    def get_tool_calls(self, project_path: str) -> list[ToolCallRecord]:
        """Return the recorded calls of a project, oldest first."""
        with self._lock:
            return list(self._records.get(project_path, ()))

    def clear_tool_calls(self, project_path: str, before: datetime | None = None) -> None:
        """Forget the calls of a project.

        Args:
            project_path: Project to clear.
            before: Only drop calls recorded at or before this time.
        """
        with self._lock:
            records = self._records.get(project_path)
            if records is None:
                return
            if before is None:
                del self._records[project_path]
            else:
                self._records[project_path] = [r for r in records if r.timestamp > before]
        logger.info("Tool calls cleared for %s", project_path)

    def get_tool_call_stats(self, project_path: str) -> dict[str, Any]:
        """Summarize the calls of a project.

        Returns:
            ``total_calls``, a per-tool ``by_tool`` count and
            ``last_call_time`` (None when nothing was recorded).
        """
        records = self.get_tool_calls(project_path)
        return {
            "total_calls": len(records),
            "by_tool": dict(Counter(r.tool_name for r in records)),
            "last_call_time": max((r.timestamp for r in records), default=None),
        }
