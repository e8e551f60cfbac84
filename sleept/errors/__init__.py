"""Error taxonomy and error logging helpers."""

from .handling import error_category, is_retryable_error, log_error  # noqa: F401
from .internal import *  # noqa: F401,F403
from .internal import __all__ as _internal_all

__all__ = [*_internal_all, "error_category", "is_retryable_error", "log_error"]
