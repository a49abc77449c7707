"""Shared test fixtures for cli-relay tests.

Fixture overview::

    temp_dir (base temporary directory)
    └── history_storage (JsonlHistoryStorage in temp_dir)

    history (RecordingHistory, in-memory IHistoryStore)
    change_tracker (MagicMock IChangeTracker)
    sync_trigger (MagicMock ISyncTrigger)
    handler (StreamHandler wired to the three collaborators)
    └── events / permission_requests (listener capture lists)
"""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cli_relay.core.interfaces import IChangeTracker, IHistoryStore, ISyncTrigger
from cli_relay.core.types import HistoryMessage, PermissionRequest, StreamEvent
from cli_relay.history import JsonlHistoryStorage
from cli_relay.stream import PERMISSION_REQUEST_EVENT, STREAM_EVENT, StreamHandler


class RecordingHistory(IHistoryStore):
    """In-memory history store that records every append."""

    def __init__(self) -> None:
        self.messages: list[HistoryMessage] = []

    async def append(self, message: HistoryMessage) -> None:
        self.messages.append(message)

    def by_role(self, role: str) -> list[HistoryMessage]:
        return [m for m in self.messages if m.role.value == role]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def history_storage(temp_dir: Path) -> JsonlHistoryStorage:
    return JsonlHistoryStorage(temp_dir / "history")


@pytest.fixture
def history() -> RecordingHistory:
    return RecordingHistory()


@pytest.fixture
def change_tracker() -> MagicMock:
    return MagicMock(spec=IChangeTracker)


@pytest.fixture
def sync_trigger() -> MagicMock:
    return MagicMock(spec=ISyncTrigger)


@pytest.fixture
def handler(
    history: RecordingHistory, change_tracker: MagicMock, sync_trigger: MagicMock
) -> Generator[StreamHandler, None, None]:
    handler = StreamHandler(
        history=history,
        change_tracker=change_tracker,
        sync_trigger=sync_trigger,
    )
    yield handler
    handler.close()


@pytest.fixture
def events(handler: StreamHandler) -> list[tuple[str, StreamEvent]]:
    """Stream events received by a listener on ``handler``."""
    received: list[tuple[str, StreamEvent]] = []
    handler.on(STREAM_EVENT, lambda sid, event: received.append((sid, event)))
    return received


@pytest.fixture
def permission_requests(handler: StreamHandler) -> list[tuple[str, PermissionRequest]]:
    """Permission requests received by a listener on ``handler``."""
    received: list[tuple[str, PermissionRequest]] = []
    handler.on(PERMISSION_REQUEST_EVENT, lambda sid, req: received.append((sid, req)))
    return received
