"""Exception hierarchy for cli-relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all cli-relay errors."""

    pass


class ConfigError(RelayError):
    """Configuration could not be loaded or validated."""

    pass


class DecodeError(RelayError):
    """A line could not be decoded as a structured envelope.

    Attributes:
        line: The offending line (already stripped).
    """

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class HistoryError(RelayError):
    """History persistence failed."""

    pass

