"""Change tracking collaborators notified by the stream handler."""

from .changes import ChangeTracker, ToolCallRecord
from .sync import MessageCounter

__all__ = [
    "ChangeTracker",
    "MessageCounter",
    "ToolCallRecord",
]
