"""Small async test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


async def settle(predicate: Callable[[], bool] | None = None, rounds: int = 500) -> None:
    """Yield to the loop until ``predicate()`` holds (or for ``rounds`` turns)."""
    for _ in range(rounds):
        if predicate is not None and predicate():
            return
        await asyncio.sleep(0)
    if predicate is not None:
        raise AssertionError("condition not reached")
