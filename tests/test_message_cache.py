import time

import pytest
from freezegun import freeze_time

from sleept.chat import UNBOUNDED, Message, MessageCache, Room


def _message(room: Room, message_id: str, **kwargs) -> Message:
    author = room.upsert_user("alice")
    return Message(id=message_id, room=room, author=author, content=message_id, **kwargs)


def test_sweep_with_unbounded_lifetime_returns_sentinel_without_calling_predicate():
    room = Room("#room", cache_lifetime=0)
    room.messages.add(_message(room, "m1"))
    calls: list[Message] = []

    def predicate(message: Message) -> bool:
        calls.append(message)
        return True

    assert room.messages.sweep(predicate) == UNBOUNDED == -1
    assert calls == []
    assert len(room.messages) == 1


def test_sweep_removes_only_expired_messages():
    room = Room("#room", cache_lifetime=60)
    with freeze_time("2024-01-01 12:00:00"):
        room.messages.add(_message(room, "old", created_at=time.time()))
    with freeze_time("2024-01-01 12:01:30"):
        room.messages.add(_message(room, "fresh", created_at=time.time()))
        removed = room.messages.sweep()
        now = time.time()
    assert removed == 1
    assert [m.id for m in room.messages] == ["fresh"]
    assert all(now - m.effective_timestamp <= 60 for m in room.messages)


def test_sweep_uses_edit_time_when_present():
    room = Room("#room", cache_lifetime=60)
    with freeze_time("2024-01-01 12:00:00"):
        created = time.time()
    with freeze_time("2024-01-01 12:01:00"):
        edited = time.time()
    room.messages.add(_message(room, "edited", created_at=created, edited_at=edited))
    assert room.messages.sweep(now=edited + 30) == 0
    assert room.messages.sweep(now=edited + 61) == 1


def test_sweep_with_predicate_counts_matches():
    cache = MessageCache(lifetime=10)
    room = Room("#room")
    for i in range(5):
        cache.add(_message(room, f"m{i}"))
    removed = cache.sweep(lambda m: m.id in {"m1", "m3"})
    assert removed == 2
    assert [m.id for m in cache] == ["m0", "m2", "m4"]


def test_sweep_lifetime_override():
    cache = MessageCache(lifetime=0)
    room = Room("#room")
    cache.add(_message(room, "m0", created_at=100.0))
    assert cache.sweep(now=200.0) == UNBOUNDED
    assert cache.sweep(now=200.0, lifetime=50) == 1


def test_max_size_evicts_oldest_first():
    cache = MessageCache(max_size=3)
    room = Room("#room")
    for i in range(5):
        cache.add(_message(room, f"m{i}"))
    assert [m.id for m in cache] == ["m2", "m3", "m4"]
    assert cache.get("m0") is None


@pytest.mark.parametrize("max_size", [0, -1])
def test_non_positive_max_size_is_unbounded(max_size):
    cache = MessageCache(max_size=max_size)
    room = Room("#room")
    for i in range(300):
        cache.add(_message(room, f"m{i}"))
    assert len(cache) == 300
