"""cli-relay: structured event relay for a command-line AI assistant."""

__version__ = "0.1.0"
