"""Abstract collaborator interfaces for cli-relay.

The stream handler never owns persistence or change tracking. It talks to
these contracts, which lets hosts plug in their own stores and lets tests
substitute mocks.

Interface Implementation Status:
- IHistoryStore: Implemented by history.repository.HistoryRepository
- IChangeTracker: Implemented by tracking.ChangeTracker
- ISyncTrigger: Implemented by tracking.MessageCounter
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cli_relay.core.types import HistoryMessage


class IHistoryStore(ABC):
    """Durable store for finished conversation messages.

    Calls are not assumed idempotent. Callers must not append messages
    with empty content.
    """

    @abstractmethod
    async def append(self, message: HistoryMessage) -> None:
        """Append one message.

        Args:
            message: The message to persist.

        Raises:
            HistoryError: If the message could not be stored.
        """
        ...


class IChangeTracker(ABC):
    """Receives notifications about file-mutating tool calls."""

    @abstractmethod
    def record_tool_call(
        self, project_path: str, session_id: str, tool_name: str
    ) -> None:
        """Record that a tool was invoked inside a project.

        Args:
            project_path: Workspace directory of the session.
            session_id: Session that issued the call.
            tool_name: Name of the invoked tool.
        """
        ...


class ISyncTrigger(ABC):
    """Receives one notification per finished assistant turn."""

    @abstractmethod
    def record_message(self, project_path: str, session_id: str) -> None:
        """Record a completed message for a project.

        Args:
            project_path: Workspace directory of the session.
            session_id: Session that completed a turn.
        """
        ...
