"""Exception hierarchy raised by the drone link."""

from __future__ import annotations

from typing import Optional


class DroneLinkError(RuntimeError):
    """Base class for every failure surfaced by drone-link."""


class TransportError(DroneLinkError):
    """Raised when a socket cannot be bound, written, or reports an error."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class CommandTimeoutError(DroneLinkError):
    """Raised when the drone does not answer a command before the deadline."""

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"No response to {command!r} within {timeout:.1f}s")
        self.command = command
        self.timeout = timeout


class ProtocolFailureError(DroneLinkError):
    """Raised when the drone replies with neither ``ok`` nor an integer."""

    def __init__(self, command: str, response: str) -> None:
        super().__init__(f"Command {command!r} failed: {response}")
        self.command = command
        self.response = response


class CommandBusyError(DroneLinkError):
    """Raised when a command is issued while another one is still pending."""

    def __init__(self, command: str, pending: Optional[str] = None) -> None:
        detail = f" (waiting on {pending!r})" if pending else ""
        super().__init__(f"Cannot send {command!r}: a command is already in flight{detail}")
        self.command = command
        self.pending = pending


class NotConnectedError(DroneLinkError):
    """Raised when an operation requires an established link."""


class StreamDisabledError(NotConnectedError):
    """Raised when a media operation is attempted while the stream is off."""


class SessionConflictError(DroneLinkError):
    """Raised when a capture and a recording would overlap on the media port."""


class AlreadyRecordingError(SessionConflictError):
    """Raised when a recording is started while one is already active."""


class NotRecordingError(DroneLinkError):
    """Raised when a recording is stopped without one being active."""


class MediaStorageError(DroneLinkError):
    """Raised when a captured payload cannot be persisted or listed."""
