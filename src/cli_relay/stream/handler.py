"""Decoding of assistant process output into stream events.

The handler consumes the stdout and stderr of an assistant process
started with ``--output-format stream-json`` and turns them into typed
``StreamEvent`` values delivered through an ``EventEmitter``.

Per session it keeps a line buffer (chunks do not respect line
boundaries) and an accumulator with the assistant reply, which is written
to the history store when the final ``result`` envelope arrives.

Example:
    ```python
    handler = StreamHandler(history=HistoryRepository())
    handler.on(STREAM_EVENT, lambda sid, event: print(event.content, end=""))

    handler.initialize_session("s1", "Explain this repo", cwd, "sonnet")
    async for chunk in process.stdout:
        handler.handle_stdout(chunk, "s1")
    await handler.drain()
    ```
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import threading
from collections.abc import Callable, Coroutine, Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from cli_relay.core.errors import DecodeError
from cli_relay.core.logging import get_logger
from cli_relay.core.types import (
    HistoryMessage,
    MessageRole,
    PermissionMode,
    StreamEvent,
    TokenUsage,
)
from cli_relay.stream.emitter import (
    PERMISSION_REQUEST_EVENT,
    STREAM_EVENT,
    EventEmitter,
    Listener,
)
from cli_relay.stream.envelope import (
    ContentBlockType,
    DeltaType,
    Envelope,
    EnvelopeType,
    StreamEventKind,
    decode_line,
)
from cli_relay.stream.lines import LineReassembler
from cli_relay.stream.permissions import PermissionDetector
from cli_relay.stream.session import DEFAULT_MODEL, SessionBuffer, SessionRegistry
from cli_relay.stream.telemetry import cache_hit_rate, parse_token_usage, usage_from_result

if TYPE_CHECKING:
    from cli_relay.config.models import RelayConfig
    from cli_relay.core.interfaces import IChangeTracker, IHistoryStore, ISyncTrigger

logger = get_logger("stream.handler")

DEFAULT_TRACKED_TOOLS: tuple[str, ...] = ("Edit", "Write", "Bash")

# Placeholder stored in history for prompts without a text part
IMAGE_ONLY_MESSAGE = "[message with image]"


def message_text(message: str | list[dict[str, Any]]) -> str:
    """Extract the history text of a prompt.

    Multimodal prompts are lists of content parts; the first ``text`` part
    is used.
    """
    if isinstance(message, str):
        return message
    for part in message:
        if isinstance(part, dict) and part.get("type") == "text":
            return str(part.get("text") or "")
    return IMAGE_ONLY_MESSAGE


class StreamHandler:
    """Turn assistant process output into ordered, typed stream events.

    Each input line is decoded and dispatched completely before the next
    one, so events of a session are emitted in line order. Chunks of one
    session are serialized with a per-session lock; different sessions are
    independent.

    History writes are fire-and-forget: they are scheduled on the running
    event loop, the loop given at construction, or else a background
    worker thread, and failures are only logged. ``drain`` (async) or
    ``wait_for_writes`` (sync) waits for them.

    Attributes:
        registry: Session accumulators.
        lines: Session line buffers.
        emitter: Listener registry for ``stream`` and ``permission_request``.
    """

    THINKING_MARKER: ClassVar[str] = "💭 Thinking...\n"
    TOOL_RESULT_MARKER: ClassVar[str] = "✅\n"
    PROGRESS_KEYWORDS: ClassVar[tuple[str, ...]] = ("Thinking", "Processing", "Working")
    LOG_PREVIEW: ClassVar[int] = 100

    def __init__(
        self,
        history: IHistoryStore | None = None,
        change_tracker: IChangeTracker | None = None,
        sync_trigger: ISyncTrigger | None = None,
        *,
        default_model: str = DEFAULT_MODEL,
        tracked_tools: Iterable[str] = DEFAULT_TRACKED_TOOLS,
        detector: PermissionDetector | None = None,
        emitter: EventEmitter | None = None,
        flush_pending_on_clear: bool = False,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            history: Store receiving user and assistant messages.
            change_tracker: Notified of file-mutating tool calls.
            sync_trigger: Notified once per final ``result`` envelope.
            default_model: Model recorded when a session names none.
            tracked_tools: Tool names reported to the change tracker.
            detector: Permission prompt detector for manual mode.
            emitter: Listener registry; a private one is created if None.
            flush_pending_on_clear: Default for ``clear_session``.
            loop: Event loop for history writes issued from threads
                without a running loop.
        """
        self.history = history
        self.change_tracker = change_tracker
        self.sync_trigger = sync_trigger
        self.tracked_tools = frozenset(tracked_tools)
        self.detector = detector or PermissionDetector()
        self.emitter = emitter or EventEmitter()
        self.registry = SessionRegistry(default_model=default_model)
        self.lines = LineReassembler()
        self.flush_pending_on_clear = flush_pending_on_clear
        self._loop = loop
        self._pending: set[asyncio.Future[Any] | concurrent.futures.Future[Any]] = set()
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

        self._envelope_handlers: dict[EnvelopeType, Callable[[Envelope, str, str | None], None]] = {
            EnvelopeType.SYSTEM: self._handle_system,
            EnvelopeType.STREAM_EVENT: self._handle_stream_event,
            EnvelopeType.ASSISTANT: self._handle_assistant,
            EnvelopeType.USER: self._handle_user,
            EnvelopeType.RESULT: self._handle_result,
        }
        self._event_handlers: dict[StreamEventKind, Callable[[Envelope, str, str | None], None]] = {
            StreamEventKind.MESSAGE_START: self._handle_message_start,
            StreamEventKind.CONTENT_BLOCK_START: self._handle_content_block_start,
            StreamEventKind.CONTENT_BLOCK_DELTA: self._handle_content_block_delta,
            StreamEventKind.CONTENT_BLOCK_STOP: self._ignore,
            StreamEventKind.MESSAGE_STOP: self._ignore,
        }

    @classmethod
    def from_config(
        cls,
        config: RelayConfig,
        history: IHistoryStore | None = None,
        change_tracker: IChangeTracker | None = None,
        sync_trigger: ISyncTrigger | None = None,
    ) -> StreamHandler:
        """Create a handler using the ``stream`` section of a config."""
        return cls(
            history=history,
            change_tracker=change_tracker,
            sync_trigger=sync_trigger,
            default_model=config.stream.default_model,
            tracked_tools=config.stream.tracked_tools,
            flush_pending_on_clear=config.stream.flush_pending_on_clear,
        )

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on(self, event_name: str, listener: Listener) -> None:
        """Register a listener (``stream`` or ``permission_request``)."""
        self.emitter.on(event_name, listener)

    def off(self, event_name: str, listener: Listener) -> None:
        """Remove a listener."""
        self.emitter.off(event_name, listener)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def initialize_session(
        self,
        session_id: str,
        message: str | list[dict[str, Any]],
        project_path: str | None = None,
        model: str | None = None,
    ) -> SessionBuffer:
        """Start accumulating a new exchange and save the prompt.

        Any previous state of ``session_id`` is replaced.

        Args:
            session_id: Caller-supplied session key.
            message: The user prompt (text or multimodal content parts).
            project_path: Workspace directory of the session.
            model: Model identifier; defaults to the handler's default.

        Returns:
            The new session buffer.
        """
        text = message_text(message)
        with self.registry.locked(session_id):
            buffer = self.registry.create(session_id, text, project_path, model)
            self.lines.discard(session_id)

        logger.info("Session initialized: session=%s, model=%s", session_id, buffer.model)

        if text.strip():
            self._persist(
                HistoryMessage(
                    session_id=session_id,
                    role=MessageRole.USER,
                    content=text,
                    project_path=project_path,
                )
            )
        return buffer

    def clear_session(self, session_id: str, flush_pending: bool | None = None) -> None:
        """Drop a session's state without saving its reply.

        Args:
            session_id: Session to clear.
            flush_pending: Decode the buffered unterminated line as a final
                line before dropping it. Defaults to
                ``flush_pending_on_clear`` (discard).
        """
        if flush_pending is None:
            flush_pending = self.flush_pending_on_clear
        with self.registry.locked(session_id):
            buffer = self.registry.get(session_id)
            tail = self.lines.discard(session_id)
            if tail and flush_pending:
                project_path = buffer.project_path if buffer else None
                self._process_line(tail, session_id, project_path)
            elif tail:
                logger.debug(
                    "Discarded unterminated output for %s: %s",
                    session_id,
                    tail[: self.LOG_PREVIEW],
                )
            self.registry.pop(session_id)
        logger.debug("Session cleared: session=%s", session_id)

    def has_session(self, session_id: str) -> bool:
        """Check whether a session has an accumulator."""
        return session_id in self.registry

    def get_session(self, session_id: str) -> SessionBuffer | None:
        """Return a copy of a session's accumulator state."""
        return self.registry.snapshot(session_id)

    # ------------------------------------------------------------------
    # Input channels
    # ------------------------------------------------------------------

    def handle_stdout(
        self,
        data: bytes | str,
        session_id: str,
        project_path: str | None = None,
    ) -> None:
        """Process a stdout chunk in stream-json (or plain text) format.

        Args:
            data: Raw chunk, split at an arbitrary position.
            session_id: Session the chunk belongs to.
            project_path: Workspace directory; defaults to the one given
                at session initialization.
        """
        with self.registry.locked(session_id):
            if project_path is None:
                buffer = self.registry.get(session_id)
                project_path = buffer.project_path if buffer else None

            for line in self.lines.feed(session_id, data):
                self._process_line(line, session_id, project_path)

    def handle_stderr(
        self,
        data: bytes | str,
        session_id: str,
        permission_mode: PermissionMode | str = PermissionMode.AUTO,
    ) -> None:
        """Process a stderr chunk.

        Stderr carries free-text token usage, progress messages and, in
        manual mode, permission prompts.

        Args:
            data: Raw chunk.
            session_id: Session the chunk belongs to.
            permission_mode: ``manual`` enables permission prompt detection.
        """
        chunk = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        mode = PermissionMode(permission_mode)

        # Stderr touches no session state; only live sessions are ordered
        # against their stdout
        guard = (
            self.registry.locked(session_id)
            if session_id in self.registry
            else contextlib.nullcontext()
        )
        with guard:
            logger.info("Received stderr (%d chars): %s", len(chunk), chunk[: self.LOG_PREVIEW])

            usage = parse_token_usage(chunk)
            if usage is not None:
                logger.info(
                    "Token usage from stderr: input=%s, output=%s",
                    usage.input_tokens,
                    usage.output_tokens,
                )
                self.emit_stream_event(session_id, StreamEvent.done(usage))

            if mode is PermissionMode.MANUAL:
                request = self.detector.detect(chunk, session_id)
                if request is not None:
                    self.emitter.emit(PERMISSION_REQUEST_EVENT, session_id, request)

            if any(keyword in chunk for keyword in self.PROGRESS_KEYWORDS):
                self.emit_stream_event(session_id, StreamEvent.thinking(chunk))

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def emit_stream_event(self, session_id: str, event: StreamEvent) -> None:
        """Deliver a stream event to every ``stream`` listener."""
        self.emitter.emit(STREAM_EVENT, session_id, event)

    def emit_error(self, session_id: str, error: str) -> None:
        """Report an upstream failure (e.g. process crash) to listeners."""
        logger.error("Error in session %s: %s", session_id, error)
        self.emit_stream_event(session_id, StreamEvent.error(error))

    # ------------------------------------------------------------------
    # Line decoding
    # ------------------------------------------------------------------

    def _process_line(self, line: str, session_id: str, project_path: str | None) -> None:
        stripped = line.strip()
        if not stripped:
            return

        try:
            envelope = decode_line(stripped)
        except DecodeError:
            # Not stream-json (e.g. --resume output); forward as text
            logger.debug("Plain text output: %s", stripped[: self.LOG_PREVIEW])
            self.emit_stream_event(session_id, StreamEvent.text(line + "\n"))
            return

        handler = self._envelope_handlers.get(envelope.type)
        if handler is None:
            logger.debug("Unknown event type: %r", envelope.raw_type)
            return
        handler(envelope, session_id, project_path)

    def _handle_system(self, envelope: Envelope, session_id: str, project_path: str | None) -> None:
        logger.info(
            "System init: session_id=%s, model=%s",
            envelope.data.get("session_id"),
            envelope.data.get("model"),
        )

    def _handle_stream_event(
        self, envelope: Envelope, session_id: str, project_path: str | None
    ) -> None:
        if not envelope.event:
            return
        kind = envelope.event_kind
        handler = self._event_handlers.get(kind)
        if handler is None:
            logger.debug("Unknown stream_event type: %r", envelope.event.get("type"))
            return
        handler(envelope, session_id, project_path)

    def _handle_assistant(self, envelope: Envelope, session_id: str, project_path: str | None) -> None:
        # Text already arrived through content_block_delta events
        if envelope.message_content:
            logger.debug("Complete assistant message received for %s", session_id)

    def _handle_user(self, envelope: Envelope, session_id: str, project_path: str | None) -> None:
        for block in envelope.message_content:
            if ContentBlockType.parse(block.get("type")) is ContentBlockType.TOOL_RESULT:
                self.emit_stream_event(session_id, StreamEvent.tool_use(self.TOOL_RESULT_MARKER))

    def _handle_result(self, envelope: Envelope, session_id: str, project_path: str | None) -> None:
        usage = usage_from_result(envelope.usage)

        logger.info(
            "Final result: duration=%sms, cost=$%s",
            envelope.data.get("duration_ms"),
            envelope.data.get("total_cost_usd"),
        )
        logger.info(
            "Token usage: input=%s, output=%s", usage.input_tokens, usage.output_tokens
        )
        if usage.cache_read_input_tokens:
            logger.info(
                "Cache hit: %s tokens (%.1f%% hit rate)",
                usage.cache_read_input_tokens,
                cache_hit_rate(usage),
            )
        if usage.cache_creation_input_tokens:
            logger.info("Cache created: %s tokens", usage.cache_creation_input_tokens)

        if project_path and self.sync_trigger is not None:
            self._notify(self.sync_trigger.record_message, project_path, session_id)

        self.emit_stream_event(session_id, StreamEvent.done(usage))
        self._flush(session_id, usage)

    def _handle_message_start(
        self, envelope: Envelope, session_id: str, project_path: str | None
    ) -> None:
        logger.info("Message started: session=%s", session_id)
        self.emit_stream_event(session_id, StreamEvent.thinking(self.THINKING_MARKER))

    def _handle_content_block_start(
        self, envelope: Envelope, session_id: str, project_path: str | None
    ) -> None:
        block = envelope.content_block
        if ContentBlockType.parse(block.get("type")) is not ContentBlockType.TOOL_USE:
            return

        tool_name = block.get("name") or "Unknown"
        logger.info("Tool: %s", tool_name)

        if tool_name in self.tracked_tools and project_path and self.change_tracker is not None:
            self._notify(self.change_tracker.record_tool_call, project_path, session_id, tool_name)

        self.emit_stream_event(session_id, StreamEvent.tool_use(f"\n🔧 {tool_name}\n"))

    def _handle_content_block_delta(
        self, envelope: Envelope, session_id: str, project_path: str | None
    ) -> None:
        delta = envelope.delta
        kind = DeltaType.parse(delta.get("type"))

        if kind is DeltaType.TEXT_DELTA:
            text = delta.get("text")
            if not isinstance(text, str):
                logger.debug("text_delta without text in session %s", session_id)
                return
            self.emit_stream_event(session_id, StreamEvent.text(text))
            self.registry.append_text(session_id, text)
        elif kind is DeltaType.INPUT_JSON_DELTA:
            # Tool arguments are not forwarded to listeners
            partial = delta.get("partial_json") or ""
            if partial.strip():
                logger.debug("Tool input building: %s...", partial[:50])
        else:
            logger.debug("Unknown delta type: %r", delta.get("type"))

    def _ignore(self, envelope: Envelope, session_id: str, project_path: str | None) -> None:
        pass

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _notify(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.warning("Collaborator %s failed: %s", getattr(callback, "__qualname__", callback), e)

    def _flush(self, session_id: str, usage: TokenUsage) -> None:
        """Tear down a finished session and save its reply."""
        buffer = self.registry.pop(session_id)
        tail = self.lines.discard(session_id)
        if tail:
            logger.debug(
                "Discarded unterminated output after result for %s: %s",
                session_id,
                tail[: self.LOG_PREVIEW],
            )

        if buffer is None or not buffer.has_reply:
            logger.debug("No assistant message to save for session %s", session_id)
            return

        self._persist(
            HistoryMessage(
                session_id=session_id,
                role=MessageRole.ASSISTANT,
                content=buffer.assistant_message,
                project_path=buffer.project_path,
                metadata={"model": buffer.model, "tokenCount": usage.output_tokens},
            )
        )

    def _persist(self, message: HistoryMessage) -> None:
        if self.history is None:
            return
        self._spawn(self._save(self.history, message))

    async def _save(self, history: IHistoryStore, message: HistoryMessage) -> None:
        try:
            await history.append(message)
        except Exception as e:
            logger.warning(
                "Failed to save %s message for session %s: %s",
                message.role.value,
                message.session_id,
                e,
            )
            return
        logger.info(
            "Saved %s message to history: %d chars",
            message.role.value,
            len(message.content),
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Schedule a coroutine without waiting for it."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        future: asyncio.Future[Any] | concurrent.futures.Future[Any]
        if running is not None:
            future = running.create_task(coro)
        elif self._loop is not None and self._loop.is_running():
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            # One worker keeps writes in submission order
            with self._executor_lock:
                if self._executor is None:
                    self._executor = concurrent.futures.ThreadPoolExecutor(
                        max_workers=1,
                        thread_name_prefix="relay-history",
                    )
                future = self._executor.submit(asyncio.run, coro)

        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def wait_for_writes(self, timeout: float | None = None) -> bool:
        """Block until history writes submitted from outside a loop finish.

        Covers writes handed to the background worker or to the loop given
        at construction; tasks on a running loop are awaited with
        ``drain``. Must not be called from the construction loop's thread.

        Returns:
            False if the timeout expired first.
        """
        futures = [f for f in list(self._pending) if isinstance(f, concurrent.futures.Future)]
        _, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Wait for background history writes and stop the worker thread."""
        self.wait_for_writes()
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    async def drain(self) -> None:
        """Wait for every scheduled history write to finish."""
        while self._pending:
            pending = list(self._pending)
            await asyncio.gather(
                *(
                    asyncio.wrap_future(f) if isinstance(f, concurrent.futures.Future) else f
                    for f in pending
                ),
                return_exceptions=True,
            )
            self._pending.difference_update(pending)
