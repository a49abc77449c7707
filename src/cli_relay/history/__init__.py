"""History persistence package.

Finished user and assistant messages are appended to one JSONL file per
session.

Example:
    from cli_relay.history import HistoryRepository, JsonlHistoryStorage

    repository = HistoryRepository(JsonlHistoryStorage("/tmp/history"))
    handler = StreamHandler(history=repository)
"""

from .repository import HistoryRepository
from .storage import HistoryCorruptedError, HistoryStorageError, JsonlHistoryStorage

__all__ = [
    "HistoryCorruptedError",
    "HistoryRepository",
    "HistoryStorageError",
    "JsonlHistoryStorage",
]
