"""CLI error types."""

from __future__ import annotations


class KoorCLIError(RuntimeError):
    """Base koor-cli error."""


class TransportError(KoorCLIError):
    """Server could not be reached or the response could not be read."""


class UsageError(KoorCLIError):
    """Command line could not be interpreted."""

    def __init__(self, message: str, *, usage: str | None = None) -> None:
        super().__init__(message)
        self.usage = usage


class StreamUnavailableError(KoorCLIError):
    """Event stream upgrade could not be established."""
