from __future__ import annotations


class ConsoleError(Exception):
    """Base class for failures raised by the session controller stack."""


class ValidationError(ConsoleError, ValueError):
    """Local input failed a precondition; nothing was sent to the bot service."""


class RemoteCallFailure(ConsoleError):
    """A bot service operation errored or returned an unusable payload."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class AuthAbandoned(ConsoleError):
    """The interactive login never completed."""


__all__ = ["AuthAbandoned", "ConsoleError", "RemoteCallFailure", "ValidationError"]
