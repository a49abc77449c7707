"""CLI entry point for cli-relay.

``cli-relay replay`` feeds a captured assistant stdout (and optionally
stderr) through a StreamHandler and prints the resulting events. It is
meant for inspecting recorded sessions and for debugging the decoder.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from cli_relay import __version__
from cli_relay.config import ConfigLoader
from cli_relay.core import (
    ConfigError,
    PermissionMode,
    PermissionRequest,
    StreamEvent,
    StreamEventType,
    get_logger,
    setup_logging,
)
from cli_relay.history import HistoryRepository, JsonlHistoryStorage
from cli_relay.stream import PERMISSION_REQUEST_EVENT, STREAM_EVENT, StreamHandler
from cli_relay.tracking import ChangeTracker, MessageCounter

if TYPE_CHECKING:
    from cli_relay.config import RelayConfig

logger = get_logger("cli")

CHUNK_SIZE = 4096

VALUE_OPTIONS = ("--stderr", "--session", "--project", "--model")
FLAG_OPTIONS = ("--manual", "--json", "--history", "-h", "--help", "-v", "--version")

STYLES = {
    StreamEventType.TEXT: "",
    StreamEventType.TOOL_USE: "cyan",
    StreamEventType.THINKING: "dim",
    StreamEventType.ERROR: "bold red",
}


def print_help() -> None:
    print(
        "Usage: cli-relay replay STDOUT_FILE [options]\n"
        "\n"
        "Decode a captured stream-json stdout and print its events.\n"
        "\n"
        "Options:\n"
        "  --stderr FILE     Captured stderr of the same run\n"
        "  --session ID      Session id (default: replay)\n"
        "  --project PATH    Project path of the session\n"
        "  --model NAME      Model recorded with the session\n"
        "  --manual          Detect permission prompts on stderr\n"
        "  --history         Save user/assistant messages to history\n"
        "  --json            Print events as JSON lines\n"
        "  -v, --version     Show version\n"
        "  -h, --help        Show this help"
    )


def parse_args(args: list[str]) -> tuple[list[str], dict[str, str], set[str]]:
    """Split argv into positionals, valued options and flags.

    Raises:
        ValueError: On unknown options or missing option values.
    """
    positionals: list[str] = []
    values: dict[str, str] = {}
    flags: set[str] = set()

    it = iter(args)
    for arg in it:
        if arg in VALUE_OPTIONS:
            value = next(it, None)
            if value is None:
                raise ValueError(f"Option '{arg}' requires a value")
            values[arg] = value
        elif arg in FLAG_OPTIONS:
            flags.add(arg)
        elif arg.startswith("-"):
            raise ValueError(f"Unknown option '{arg}'")
        else:
            positionals.append(arg)
    return positionals, values, flags


class EventPrinter:
    """Render stream events and permission requests."""

    def __init__(self, console: Console, json_output: bool = False) -> None:
        self.console = console
        self.json_output = json_output

    def on_stream(self, session_id: str, event: StreamEvent) -> None:
        if self.json_output:
            self.console.print_json(json.dumps({"sessionId": session_id, **event.to_dict()}))
            return

        if event.type is StreamEventType.DONE:
            self.print_usage(event)
            return
        self.console.print(event.content, end="", style=STYLES[event.type], markup=False, highlight=False)

    def on_permission(self, session_id: str, request: PermissionRequest) -> None:
        if self.json_output:
            self.console.print_json(json.dumps({"permissionRequest": request.to_dict()}))
            return
        self.console.print(
            f"\n[bold yellow]Permission requested[/] ({request.tool_name}): {request.action}"
        )

    def print_usage(self, event: StreamEvent) -> None:
        usage = event.token_usage.to_dict() if event.token_usage else {}
        table = Table(title="Token usage", show_header=False)
        for name, value in usage.items():
            table.add_row(name, str(value))
        self.console.print()
        self.console.print(table)


def _read_chunks(path: Path) -> list[bytes]:
    data = path.read_bytes()
    return [data[i : i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE)]


async def replay(
    config: RelayConfig,
    stdout_path: Path,
    stderr_path: Path | None,
    session_id: str,
    project_path: str | None,
    model: str | None,
    permission_mode: PermissionMode,
    save_history: bool,
    printer: EventPrinter,
) -> int:
    """Feed captured output through a handler.

    Returns:
        Exit code.
    """
    history = None
    if save_history:
        history = HistoryRepository(
            JsonlHistoryStorage(config.history.directory),
            max_workers=config.history.max_workers,
        )

    handler = StreamHandler.from_config(
        config,
        history=history,
        change_tracker=ChangeTracker(),
        sync_trigger=MessageCounter(config.sync.message_threshold),
    )
    handler.on(STREAM_EVENT, printer.on_stream)
    handler.on(PERMISSION_REQUEST_EVENT, printer.on_permission)

    handler.initialize_session(session_id, f"[replay of {stdout_path.name}]", project_path, model)

    if stderr_path is not None:
        for chunk in _read_chunks(stderr_path):
            handler.handle_stderr(chunk, session_id, permission_mode)

    for chunk in _read_chunks(stdout_path):
        handler.handle_stdout(chunk, session_id)

    if handler.has_session(session_id):
        logger.info("Stream ended without a result envelope")
        handler.clear_session(session_id, flush_pending=True)

    await handler.drain()
    if history is not None:
        history.close()
    return 0


def main() -> int:
    """Main entry point for cli-relay.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    try:
        positionals, values, flags = parse_args(sys.argv[1:])
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'cli-relay --help' for usage information", file=sys.stderr)
        return 1

    if "--version" in flags or "-v" in flags:
        print(f"cli-relay {__version__}")
        return 0

    if "--help" in flags or "-h" in flags or not positionals:
        print_help()
        return 0

    command, *rest = positionals
    if command != "replay" or len(rest) != 1:
        print(f"Error: Unknown command '{' '.join(positionals)}'", file=sys.stderr)
        return 1

    try:
        config = ConfigLoader().load_all()
    except ConfigError as e:
        print(f"Error: Failed to load configuration: {e}", file=sys.stderr)
        print(
            "Hint: Check your config files at ~/.relay/settings.json or .relay/settings.json",
            file=sys.stderr,
        )
        return 1

    setup_logging(level=config.logging.level, log_file=config.logging.file)

    stdout_path = Path(rest[0])
    stderr_path = Path(values["--stderr"]) if "--stderr" in values else None
    for path in (stdout_path, stderr_path):
        if path is not None and not path.is_file():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1

    permission_mode = PermissionMode.MANUAL if "--manual" in flags else config.stream.permission_mode
    printer = EventPrinter(Console(), json_output="--json" in flags)

    try:
        return asyncio.run(
            replay(
                config,
                stdout_path,
                stderr_path,
                session_id=values.get("--session", "replay"),
                project_path=values.get("--project"),
                model=values.get("--model"),
                permission_mode=permission_mode,
                save_history="--history" in flags and config.history.enabled,
                printer=printer,
            )
        )
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
