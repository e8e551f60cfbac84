"""Token bucket used to pace outbound commands."""

from __future__ import annotations

import time
from collections.abc import Callable

from ..constants import RATE_LIMIT_CAPACITY, RATE_LIMIT_WINDOW_SECONDS

# Absorbs float error so a bucket that is "one token full" is never short
_EPSILON = 1e-9


class TokenBucket:
    """Capacity ``C`` tokens, refilled continuously so an empty bucket is
    full again after ``interval`` seconds (one token every ``interval / C``).

    Not thread-safe; owned by the single command queue dispatcher.
    """

    def __init__(
        self,
        capacity: int = RATE_LIMIT_CAPACITY,
        interval: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.capacity = capacity
        self.interval = interval
        self.clock = clock
        self._tokens = float(capacity)
        self._updated = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self.clock()
        elapsed = now - self._updated
        if elapsed > 0:
            gained = elapsed * self.capacity / self.interval
            self._tokens = min(float(self.capacity), self._tokens + gained)
        self._updated = now

    def try_acquire(self) -> float:
        """Take one token if available.

        Returns:
            0.0 when a token was consumed, otherwise the number of seconds
            until the next token becomes available.
        """
        self._refill()
        if self._tokens + _EPSILON >= 1.0:
            self._tokens = max(0.0, self._tokens - 1.0)
            return 0.0
        return (1.0 - self._tokens) * self.interval / self.capacity

