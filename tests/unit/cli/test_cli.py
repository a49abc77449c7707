"""Tests for the cli-relay command line."""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Generator
from pathlib import Path

import pytest
from rich.console import Console

from cli_relay import __version__
from cli_relay.cli.main import EventPrinter, main, parse_args, replay
from cli_relay.config import RelayConfig
from cli_relay.core import PermissionMode
from cli_relay.core.logging import ROOT_LOGGER_NAME

TRANSCRIPT = "".join(
    json.dumps(record) + "\n"
    for record in [
        {"type": "system", "subtype": "init", "session_id": "abc", "model": "sonnet"},
        {"type": "stream_event", "event": {"type": "message_start"}},
        {
            "type": "stream_event",
            "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hello"}},
        },
        {
            "type": "stream_event",
            "event": {
                "type": "content_block_start",
                "content_block": {"type": "tool_use", "name": "Bash"},
            },
        },
        {"type": "result", "usage": {"input_tokens": 100, "output_tokens": 50}},
    ]
)


@pytest.fixture
def workspace(
    temp_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolated home, cwd and data directory; logging restored afterwards."""
    monkeypatch.setenv("HOME", str(temp_dir / "home"))
    monkeypatch.setenv("XDG_DATA_HOME", str(temp_dir / "data"))
    for name in ("RELAY_LOG_LEVEL", "RELAY_HISTORY_DIR", "RELAY_HISTORY_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(temp_dir)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers = list(root_logger.handlers)
    yield temp_dir
    root_logger.handlers[:] = handlers


def run(monkeypatch: pytest.MonkeyPatch, *args: str) -> int:
    monkeypatch.setattr(sys, "argv", ["cli-relay", *args])
    return main()


class TestParseArgs:
    """Tests for argument parsing."""

    def test_positionals_values_flags(self) -> None:
        positionals, values, flags = parse_args(
            ["replay", "out.jsonl", "--session", "s1", "--manual", "--json"]
        )
        assert positionals == ["replay", "out.jsonl"]
        assert values == {"--session": "s1"}
        assert flags == {"--manual", "--json"}

    def test_unknown_option(self) -> None:
        with pytest.raises(ValueError, match="Unknown option"):
            parse_args(["--verbose"])

    def test_missing_value(self) -> None:
        with pytest.raises(ValueError, match="requires a value"):
            parse_args(["replay", "out.jsonl", "--stderr"])


class TestMain:
    """Tests for the main entry point."""

    def test_version(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        assert run(monkeypatch, "--version") == 0
        assert capsys.readouterr().out.strip() == f"cli-relay {__version__}"

    def test_help(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        assert run(monkeypatch) == 0
        assert "Usage: cli-relay replay" in capsys.readouterr().out

    def test_bad_option(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        assert run(monkeypatch, "--nope") == 1
        assert "Unknown option" in capsys.readouterr().err

    def test_unknown_command(self, workspace: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        assert run(monkeypatch, "serve") == 1
        assert "Unknown command" in capsys.readouterr().err

    def test_missing_file(self, workspace: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        assert run(monkeypatch, "replay", str(workspace / "missing.jsonl")) == 1
        assert "File not found" in capsys.readouterr().err

    def test_invalid_config(self, workspace: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setenv("RELAY_PERMISSION_MODE", "sometimes")
        stdout_file = workspace / "out.jsonl"
        stdout_file.write_text(TRANSCRIPT)

        assert run(monkeypatch, "replay", str(stdout_file)) == 1
        assert "Failed to load configuration" in capsys.readouterr().err

    def test_replay_prints_events(
        self, workspace: Path, monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        stdout_file = workspace / "out.jsonl"
        stdout_file.write_text(TRANSCRIPT)

        assert run(monkeypatch, "replay", str(stdout_file)) == 0

        out = capsys.readouterr().out
        assert "Hello" in out
        assert "Bash" in out
        assert "output_tokens" in out

    def test_replay_saves_history(self, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        stdout_file = workspace / "out.jsonl"
        stdout_file.write_text(TRANSCRIPT)

        assert run(monkeypatch, "replay", str(stdout_file), "--history", "--session", "rec-1") == 0

        history_file = workspace / "data" / "relay" / "history" / "rec-1.jsonl"
        records = [json.loads(line) for line in history_file.read_text().splitlines()]
        assert [r["role"] for r in records] == ["user", "assistant"]
        assert records[1]["content"] == "Hello"
        assert records[1]["metadata"] == {"model": "sonnet", "tokenCount": 50}


class TestReplay:
    """Tests for the replay coroutine."""

    @pytest.mark.asyncio
    async def test_json_output_with_permission(self, temp_dir: Path) -> None:
        stdout_file = temp_dir / "out.jsonl"
        stderr_file = temp_dir / "err.txt"
        stdout_file.write_text(TRANSCRIPT)
        stderr_file.write_text("Do you want to edit this file? (y/n)\n")
        buffer = io.StringIO()

        code = await replay(
            RelayConfig(),
            stdout_file,
            stderr_file,
            session_id="s1",
            project_path=str(temp_dir),
            model=None,
            permission_mode=PermissionMode.MANUAL,
            save_history=False,
            printer=EventPrinter(Console(file=buffer), json_output=True),
        )

        assert code == 0
        output = buffer.getvalue()
        assert '"toolName": "Edit"' in output
        assert '"sessionId": "s1"' in output
        assert '"type": "done"' in output

    @pytest.mark.asyncio
    async def test_unterminated_output_flushed(self, temp_dir: Path) -> None:
        """Output without a result envelope is decoded up to the last byte."""
        stdout_file = temp_dir / "out.txt"
        stdout_file.write_text("plain output without newline")
        buffer = io.StringIO()

        await replay(
            RelayConfig(),
            stdout_file,
            None,
            session_id="s1",
            project_path=None,
            model=None,
            permission_mode=PermissionMode.AUTO,
            save_history=False,
            printer=EventPrinter(Console(file=buffer)),
        )

        assert "plain output without newline" in buffer.getvalue()
