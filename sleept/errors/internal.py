"""Centralized error hierarchy.

These exceptions give semantic categories to everything that can go wrong
between the wire and the application. Raw ``websockets`` / ``OSError``
failures are wrapped at the transport boundary so callers only ever see
the types below.

Classes:
  SleeptError          – Base for all library errors.
  CodecError           – Wire codec failures (parse/encode).
  SessionError         – Connection, authentication and request failures.
  InvalidConfiguration – Rejected client options.
"""

from __future__ import annotations

from collections.abc import Mapping


class SleeptError(Exception):
    """Base class for all library errors with metadata support.

    Attributes:
        data: Dictionary containing arbitrary structured context data.

    Args:
        message: Descriptive error message.
        data: Optional mapping of additional context data.
    """

    data: dict[str, object]

    def __init__(
        self, message: str, *, data: Mapping[str, object] | None = None
    ) -> None:
        super().__init__(message)
        # Copy into a plain dict to avoid unexpected mutations from caller.
        self.data = dict(data) if data else {}


class CodecError(SleeptError):
    """Base for wire codec errors."""


class MalformedFrame(CodecError):
    """Raised when a protocol line has no extractable command.

    Inbound malformed lines are logged and discarded by the session; this
    error never terminates a connection.
    """


class InvalidParameter(CodecError):
    """Raised when a frame cannot be encoded, e.g. a parameter containing
    a line terminator."""


class SessionError(SleeptError):
    """Base for errors surfaced by the session manager."""


class ConnectionFailed(SessionError):
    """The transport could not be opened or closed during authentication."""


class AuthRejected(SessionError):
    """The server refused the supplied credentials.

    The session never reconnects automatically after this error since the
    credentials are presumed invalid.
    """


class AuthTimeout(SessionError):
    """No authentication verdict arrived within the configured timeout."""


class RetriesExhausted(SessionError):
    """Reconnection gave up after the configured number of attempts."""


class NotConnected(SessionError):
    """A room operation was attempted while the session is not ready."""


class RequestTimeout(SessionError):
    """No correlated reply arrived for a pending request in time."""


class SendFailed(SessionError):
    """The transport refused an outbound command; the command was dropped."""


class InvalidConfiguration(SleeptError):
    """Client options failed validation. Raised at construction time."""


__all__ = [
    "SleeptError",
    "CodecError",
    "MalformedFrame",
    "InvalidParameter",
    "SessionError",
    "ConnectionFailed",
    "AuthRejected",
    "AuthTimeout",
    "RetriesExhausted",
    "NotConnected",
    "RequestTimeout",
    "SendFailed",
    "InvalidConfiguration",
]
