"""Async history repository implementing the IHistoryStore interface.

This module provides an async layer on top of the sync JsonlHistoryStorage
so the stream handler can schedule writes without blocking decoding.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from cli_relay.core.interfaces import IHistoryStore
from cli_relay.core.types import HistoryMessage

from .storage import JsonlHistoryStorage


class HistoryRepository(IHistoryStore):
    """Async repository for history persistence.

    Uses a thread pool for non-blocking file I/O.

    Attributes:
        storage: The underlying sync storage instance.
    """

    def __init__(
        self,
        storage: JsonlHistoryStorage | None = None,
        max_workers: int = 2,
    ) -> None:
        """Initialize history repository.

        Args:
            storage: JsonlHistoryStorage instance. Creates default if None.
            max_workers: Maximum thread pool workers for async operations.
        """
        self._storage = storage or JsonlHistoryStorage()
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

    @property
    def storage(self) -> JsonlHistoryStorage:
        return self._storage

    async def append(self, message: HistoryMessage) -> None:
        """Append a message to history.

        Raises:
            HistoryStorageError: If the write fails.
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            self._executor,
            partial(self._storage.append, message),
        )

    async def load(self, session_id: str) -> list[HistoryMessage]:
        """Load a session's messages, oldest first."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(self._storage.load, session_id),
        )

    async def delete(self, session_id: str) -> bool:
        """Delete a session's history."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(self._storage.delete, session_id),
        )

    def close(self) -> None:
        """Shutdown the thread pool executor."""
        self._executor.shutdown(wait=True)

    async def __aenter__(self) -> HistoryRepository:
        return self

    async def __aexit__(self, *args: object) -> None:
        self.close()
