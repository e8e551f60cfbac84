"""Room Store: room identifier -> Room (members + message cache)."""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Iterable, Iterator, Mapping

from ..constants import DEFAULT_MESSAGE_CACHE_MAX_SIZE, ROOM_SIGIL
from .message_cache import MessageCache
from .models import User


def normalize_room_name(name: str) -> str:
    """Lowercase a room name and enforce the ``#`` sigil."""
    name = name.strip().lower()
    if not name.startswith(ROOM_SIGIL):
        name = f"{ROOM_SIGIL}{name}"
    return name


class Room:
    """One chat room.

    Attributes:
        id (str): Normalized identifier, always ``#``-prefixed.
        joined (bool): Whether the server confirmed our JOIN on the
            current connection.
        messages (MessageCache): Recent messages seen in the room.
    """

    def __init__(
        self,
        room_id: str,
        *,
        cache_max_size: int = DEFAULT_MESSAGE_CACHE_MAX_SIZE,
        cache_lifetime: float = 0,
    ) -> None:
        self.id = normalize_room_name(room_id)
        self.joined = False
        self.messages = MessageCache(max_size=cache_max_size, lifetime=cache_lifetime)
        self._users: dict[str, User] = {}
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"Room({self.id!r}, joined={self.joined}, users={len(self._users)})"

    @property
    def name(self) -> str:
        return self.id[len(ROOM_SIGIL) :]

    @property
    def users(self) -> dict[str, User]:
        """Snapshot of the member mapping."""
        with self._lock:
            return dict(self._users)

    def get_user(self, login: str) -> User | None:
        with self._lock:
            return self._users.get(login.lower())

    def upsert_user(self, login: str, tags: Mapping[str, str] | None = None) -> User:
        with self._lock:
            key = login.lower()
            user = self._users.get(key)
            if user is None:
                user = User(key)
                self._users[key] = user
            if tags:
                user.update_from_tags(tags)
            return user

    def remove_user(self, login: str) -> User | None:
        with self._lock:
            return self._users.pop(login.lower(), None)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()
        self.messages.clear()
        self.joined = False


class RoomStore:
    """Ordered mapping of normalized room identifiers to Rooms.

    Only the event dispatcher and the sweep timer mutate rooms; everything
    else reads. Lookups never raise for unknown rooms.
    """

    def __init__(
        self,
        rooms: Iterable[str] = (),
        *,
        cache_max_size: int = DEFAULT_MESSAGE_CACHE_MAX_SIZE,
        cache_lifetime: float = 0,
    ) -> None:
        self.cache_max_size = cache_max_size
        self.cache_lifetime = cache_lifetime
        self._rooms: OrderedDict[str, Room] = OrderedDict()
        self._lock = threading.RLock()
        for name in rooms:
            self.upsert(name)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        if not isinstance(room_id, str):
            return False
        return normalize_room_name(room_id) in self._rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(self.values())

    def get(self, room_id: str) -> Room | None:
        with self._lock:
            return self._rooms.get(normalize_room_name(room_id))

    def upsert(self, room_id: str) -> Room:
        key = normalize_room_name(room_id)
        with self._lock:
            room = self._rooms.get(key)
            if room is None:
                room = Room(
                    key,
                    cache_max_size=self.cache_max_size,
                    cache_lifetime=self.cache_lifetime,
                )
                self._rooms[key] = room
            return room

    def remove(self, room_id: str) -> Room | None:
        with self._lock:
            room = self._rooms.pop(normalize_room_name(room_id), None)
        if room is not None:
            room.clear()
        return room

    def values(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._rooms.keys())

    def mark_all_parted(self) -> None:
        """Forget server-side membership, e.g. after the connection drops."""
        for room in self.values():
            room.joined = False
