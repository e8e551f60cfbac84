"""Room, user and message state."""

from .message_cache import UNBOUNDED, MessageCache  # noqa: F401
from .models import Message, MessageMetadata, User, parse_badges  # noqa: F401
from .rooms import Room, RoomStore, normalize_room_name  # noqa: F401

__all__ = [
    "UNBOUNDED",
    "Message",
    "MessageCache",
    "MessageMetadata",
    "Room",
    "RoomStore",
    "User",
    "normalize_room_name",
    "parse_badges",
]
