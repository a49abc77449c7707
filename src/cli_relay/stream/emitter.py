"""Fan-out of decoded events to external listeners."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Final

from cli_relay.core.logging import get_logger

logger = get_logger("stream.emitter")

# Listener signature: (session_id, StreamEvent)
STREAM_EVENT: Final[str] = "stream"
# Listener signature: (session_id, PermissionRequest)
PERMISSION_REQUEST_EVENT: Final[str] = "permission_request"

Listener = Callable[..., Any]


class EventEmitter:
    """Named-channel listener registry.

    Listeners are called synchronously, in registration order, on the
    thread that emits. A failing listener is logged and does not prevent
    delivery to the others.

    Thread-safe: registration and emission may happen from different
    threads; emission iterates over a snapshot of the listener list.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.RLock()

    def on(self, event_name: str, listener: Listener) -> None:
        """Register a listener for an event name.

        Registering the same callable twice is a no-op.
        """
        with self._lock:
            listeners = self._listeners.setdefault(event_name, [])
            if listener not in listeners:
                listeners.append(listener)

    def off(self, event_name: str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        with self._lock:
            listeners = self._listeners.get(event_name)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[event_name]

    def listeners(self, event_name: str) -> list[Listener]:
        """Return a copy of the listeners registered for an event name."""
        with self._lock:
            return list(self._listeners.get(event_name, ()))

    def emit(self, event_name: str, *args: Any) -> int:
        """Deliver an event to every listener of ``event_name``.

        Returns:
            Number of listeners that were called.
        """
        listeners = self.listeners(event_name)
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.error("Listener error on %r: %s", event_name, e)
        return len(listeners)

    def clear(self) -> None:
        """Remove every listener."""
        with self._lock:
            self._listeners.clear()
