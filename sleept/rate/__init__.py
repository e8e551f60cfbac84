"""Outbound rate limiting toolkit."""

from .command_queue import CommandQueue, QueuedCommand  # noqa: F401
from .token_bucket import TokenBucket  # noqa: F401

__all__ = ["CommandQueue", "QueuedCommand", "TokenBucket"]
