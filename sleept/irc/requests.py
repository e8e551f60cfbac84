"""Pending-request table correlating replies with the calls awaiting them."""

from __future__ import annotations

import asyncio
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any

RequestKey = tuple[Hashable, ...]

LOGIN = ("login",)


def join_key(room_id: str) -> RequestKey:
    return ("join", room_id)


def part_key(room_id: str) -> RequestKey:
    return ("part", room_id)


def ping_key(nonce: str) -> RequestKey:
    return ("ping", nonce)


@dataclass(slots=True)
class PendingRequest:
    key: RequestKey
    future: asyncio.Future[Any] = field(repr=False)
    # Value handed to waiters when the request is cancelled by disconnect()
    cancel_result: Any = None
    # Wire command that asks for the reply; re-sent after a reconnect
    line: str | None = None


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Waiters may have timed out already; keep asyncio from warning about it
    if not future.cancelled():
        future.exception()


class PendingRequests:
    """First-match table: the first reply resolving a key wins.

    Opening a key that is already pending returns the existing entry, which
    is how concurrent requests for the same room share one wire command.
    """

    def __init__(self) -> None:
        self._pending: dict[RequestKey, PendingRequest] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def get(self, key: RequestKey) -> PendingRequest | None:
        return self._pending.get(key)

    def open(
        self, key: RequestKey, cancel_result: Any = None, line: str | None = None
    ) -> tuple[PendingRequest, bool]:
        """Return ``(request, created)``; ``created`` is False when joining
        an in-flight request for the same key."""
        existing = self._pending.get(key)
        if existing is not None and not existing.future.done():
            return existing, False
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        request = PendingRequest(key, future, cancel_result, line)
        self._pending[key] = request
        return request, True

    def outstanding(self) -> list[PendingRequest]:
        return [r for r in self._pending.values() if not r.future.done()]

    def discard(self, request: PendingRequest) -> None:
        if self._pending.get(request.key) is request:
            del self._pending[request.key]

    def resolve(self, key: RequestKey, result: Any) -> bool:
        request = self._pending.pop(key, None)
        if request is None or request.future.done():
            return False
        request.future.set_result(result)
        return True

    def fail(self, key: RequestKey, error: BaseException) -> bool:
        request = self._pending.pop(key, None)
        if request is None or request.future.done():
            return False
        request.future.set_exception(error)
        return True

    def fail_all(self, error: BaseException) -> int:
        requests, self._pending = list(self._pending.values()), {}
        failed = 0
        for request in requests:
            if not request.future.done():
                request.future.set_exception(error)
                failed += 1
        return failed

    def cancel_all(self) -> int:
        """Resolve every waiter with its neutral cancel result."""
        requests, self._pending = list(self._pending.values()), {}
        cancelled = 0
        for request in requests:
            if not request.future.done():
                request.future.set_result(request.cancel_result)
                cancelled += 1
        return cancelled
