"""Heuristic detection of tool-approval prompts on stderr.

In manual approval mode the assistant process asks for permission in
natural language on stderr and waits for ``y``/``n`` on stdin. This
module recognises such prompts and answers them.

Detection is inherently approximate: the prompt wording is not a stable
interface, so the patterns live in plain lists that can be tested and
extended on their own.
"""

from __future__ import annotations

import io
import re
from typing import Any, ClassVar, Final

from cli_relay.core.logging import get_logger
from cli_relay.core.types import PermissionRequest, now, to_millis

logger = get_logger("stream.permissions")

# Checked in order; the first match wins
PERMISSION_PATTERNS: Final[list[re.Pattern[str]]] = [
    # Tool approval
    re.compile(
        r"approve.*?(write|edit|create|delete|bash|execute|read|glob|grep|task)",
        re.IGNORECASE,
    ),
    re.compile(
        r"permission.*?(write|edit|create|delete|bash|read|glob|grep|task)",
        re.IGNORECASE,
    ),
    re.compile(
        r"allow.*?(write|edit|create|delete|bash|execute|read|glob|grep|task)",
        re.IGNORECASE,
    ),
    # File operations
    re.compile(r"do you want to.*?(write|edit|create|delete|read).*?file", re.IGNORECASE),
    re.compile(r"confirm.*?(write|edit|create|delete).*?file", re.IGNORECASE),
    # Command execution
    re.compile(r"execute.*?command", re.IGNORECASE),
    re.compile(r"run.*?(command|script)", re.IGNORECASE),
    # Generic prompts
    re.compile(r"\(y/n\)", re.IGNORECASE),
    re.compile(r"continue\?", re.IGNORECASE),
]

KNOWN_TOOLS: Final[tuple[str, ...]] = (
    "Write",
    "Edit",
    "Read",
    "Bash",
    "Glob",
    "Grep",
    "Task",
    "Delete",
    "Create",
)

UNKNOWN_TOOL: Final[str] = "Unknown"


class PermissionDetector:
    """Scan stderr chunks for approval prompts.

    Attributes:
        patterns: Prompt patterns, checked in order.
        tools: Known tool names used to label the request.
    """

    LOG_PREVIEW: ClassVar[int] = 100

    def __init__(
        self,
        patterns: list[re.Pattern[str]] | None = None,
        tools: tuple[str, ...] | None = None,
    ) -> None:
        self.patterns = list(PERMISSION_PATTERNS if patterns is None else patterns)
        self.tools = tuple(KNOWN_TOOLS if tools is None else tools)
        self._canonical = {tool.lower(): tool for tool in self.tools}
        self._tool_pattern = re.compile(
            "(" + "|".join(re.escape(tool) for tool in self.tools) + ")",
            re.IGNORECASE,
        )

    def resolve_tool_name(self, text: str) -> str:
        """Return the first known tool named in ``text``, or ``Unknown``."""
        match = self._tool_pattern.search(text)
        if not match:
            return UNKNOWN_TOOL
        return self._canonical.get(match.group(1).lower(), match.group(1))

    def detect(self, chunk: str, session_id: str) -> PermissionRequest | None:
        """Check one stderr chunk for an approval prompt.

        At most one request is produced per chunk.

        Args:
            chunk: Raw stderr text.
            session_id: Session the chunk belongs to.

        Returns:
            The detected request, or None.
        """
        for pattern in self.patterns:
            if not pattern.search(chunk):
                continue

            tool_name = self.resolve_tool_name(chunk)
            timestamp = now()
            logger.warning(
                "Permission request detected (%s): %s",
                tool_name,
                chunk[: self.LOG_PREVIEW],
            )
            return PermissionRequest(
                id=f"{session_id}-{to_millis(timestamp)}",
                session_id=session_id,
                tool_name=tool_name,
                action=chunk.strip(),
                timestamp=timestamp,
            )
        return None


def _is_closed(stdin: Any) -> bool:
    if getattr(stdin, "closed", False):
        return True
    is_closing = getattr(stdin, "is_closing", None)
    return bool(is_closing()) if callable(is_closing) else False


def respond_to_permission(stdin: Any, session_id: str, approved: bool) -> bool:
    """Answer a pending approval prompt on the process's stdin.

    Args:
        stdin: Writable stdin of the assistant process. Text streams get
            ``str``; anything else (pipes, asyncio writers) gets ``bytes``.
        session_id: Session being answered (for logging).
        approved: Whether the tool call is allowed.

    Returns:
        True if the answer was written.
    """
    if stdin is None or _is_closed(stdin):
        logger.warning(
            "Cannot send permission response: stdin unavailable for session %s",
            session_id,
        )
        return False

    answer = "y\n" if approved else "n\n"
    try:
        if isinstance(stdin, io.TextIOBase):
            stdin.write(answer)
        else:
            stdin.write(answer.encode("utf-8"))
        flush = getattr(stdin, "flush", None)
        if callable(flush):
            flush()
    except (OSError, ValueError) as e:
        logger.warning("Failed to send permission response for %s: %s", session_id, e)
        return False

    logger.info(
        "Sent permission response: %s for session %s",
        "approved" if approved else "denied",
        session_id,
    )
    return True
