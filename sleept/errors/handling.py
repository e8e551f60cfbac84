from __future__ import annotations

from ..logging_config import log_structured_error
from .internal import (
    AuthRejected,
    AuthTimeout,
    CodecError,
    ConnectionFailed,
    InvalidConfiguration,
    SendFailed,
    SessionError,
    SleeptError,
)


def error_category(error: BaseException) -> str:
    """Map an exception onto the category used for error aggregation."""
    if isinstance(error, ConnectionFailed | SendFailed | OSError | ConnectionError):
        return "network"
    if isinstance(error, AuthRejected | AuthTimeout):
        return "auth"
    if isinstance(error, CodecError):
        return "protocol"
    if isinstance(error, InvalidConfiguration):
        return "config"
    if isinstance(error, SessionError):
        return "session"
    if isinstance(error, SleeptError):
        return "internal"
    return "unknown"


def log_error(
    message: str, error: BaseException, context: dict[str, object] | None = None
) -> None:
    """Logs an error message with the associated exception details.

    The exception is categorized (network, auth, protocol, ...) and handed
    to structured logging so repeated failures show up in the error summary.

    Args:
        message: A descriptive message about the error context.
        error: The exception instance to be logged.
        context: Optional additional context data for debugging.
    """
    log_structured_error(
        error_type=error_category(error),
        message=f"{message}: {str(error)}",
        exception=error,
        context=context,
    )


def is_retryable_error(error: BaseException) -> bool:
    """Check if a failed connection attempt should be retried.

    Authentication rejections are deliberately absent: retrying with the
    same credentials cannot succeed.
    """
    return isinstance(error, ConnectionFailed | AuthTimeout | OSError)
