"""Per-room message cache with time-based sweeping."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator

from .models import Message

UNBOUNDED = -1


class MessageCache:
    """Insertion-ordered message store.

    ``max_size`` bounds the entry count (oldest evicted first, ``<= 0``
    means no bound); ``lifetime`` in seconds is what ``sweep`` enforces
    (``<= 0`` means retention is unbounded). Every method takes a short
    lock and never suspends, so lookups from callbacks stay consistent
    while the dispatcher or the sweep timer mutate the cache.
    """

    def __init__(self, max_size: int = 200, lifetime: float = 0) -> None:
        self.max_size = max_size
        self.lifetime = lifetime
        self._messages: OrderedDict[str, Message] = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __iter__(self) -> Iterator[Message]:
        return iter(self.values())

    def values(self) -> list[Message]:
        with self._lock:
            return list(self._messages.values())

    def get(self, message_id: str) -> Message | None:
        with self._lock:
            return self._messages.get(message_id)

    def add(self, message: Message) -> None:
        with self._lock:
            self._messages[message.id] = message
            self._messages.move_to_end(message.id)
            if self.max_size > 0:
                while len(self._messages) > self.max_size:
                    self._messages.popitem(last=False)

    def remove(self, message_id: str) -> Message | None:
        with self._lock:
            return self._messages.pop(message_id, None)

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def sweep(
        self,
        predicate: Callable[[Message], bool] | None = None,
        now: float | None = None,
        lifetime: float | None = None,
    ) -> int:
        """Remove every message matching ``predicate`` in a single pass.

        Without a predicate, messages older than ``lifetime`` are removed.
        ``lifetime`` overrides the configured retention for this pass.
        Returns the number removed, or ``-1`` when retention is unbounded,
        in which case the predicate is never invoked.
        """
        lifetime = self.lifetime if lifetime is None else lifetime
        if lifetime <= 0:
            return UNBOUNDED
        if predicate is None:
            cutoff = (time.time() if now is None else now) - lifetime
            predicate = lambda m: m.effective_timestamp < cutoff  # noqa: E731
        removed = 0
        with self._lock:
            for message_id, message in list(self._messages.items()):
                if predicate(message) and self._messages.pop(message_id, None) is not None:
                    removed += 1
        return removed
