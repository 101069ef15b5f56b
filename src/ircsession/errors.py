"""Session layer exceptions."""

from __future__ import annotations


class IRCSessionError(Exception):
    """Base for session layer errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class InvalidArgument(IRCSessionError, ValueError):
    """Malformed identifier or text handed to the command encoder."""


class MessageTooLong(IRCSessionError, ValueError):
    """Encoded line exceeds the protocol line limit; nothing was sent."""

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            f"encoded line is {length} bytes, limit is {limit}",
            code="message_too_long",
            details={"length": length, "limit": limit},
        )
        self.length = length
        self.limit = limit


class ObserverFailure(IRCSessionError):
    """An observer callback raised while handling an event."""

    def __init__(self, event: object, original_error: BaseException) -> None:
        super().__init__(
            f"observer failed on {type(event).__name__}: {original_error!r}",
            code="observer_failure",
            details={"event": type(event).__name__},
            original_error=original_error,
        )
        self.event = event


class NotConnected(IRCSessionError):
    """Command issued while the session has no live connection."""


class ConfigurationError(IRCSessionError):
    """Config validation or load failure."""
