"""Command-line interface for cli-relay."""

from cli_relay.cli.main import main

__all__ = ["main"]
