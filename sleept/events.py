"""Typed client events.

Each event kind is its own frozen dataclass carrying exactly the data the
dispatcher resolved for it. ``ClientEvent`` is the closed union of all of
them; subscribing to ``ClientEvent`` receives everything.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import ClassVar

from .chat.models import Message, MessageMetadata, User
from .chat.rooms import Room
from .irc.parser import Frame


@dataclass(frozen=True, slots=True)
class ReadyEvent:
    name: ClassVar[str] = "ready"

    user: User
    ready_at: float


@dataclass(frozen=True, slots=True)
class MessageEvent:
    name: ClassVar[str] = "message"

    message: Message
    _reply: Callable[[str], Awaitable[MessageMetadata]] = field(
        repr=False, compare=False
    )

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def author(self) -> User:
        return self.message.author

    @property
    def room(self) -> Room:
        return self.message.room

    async def reply(self, text: str) -> MessageMetadata:
        """Answer in the originating room, threaded to this message."""
        return await self._reply(text)

    def __str__(self) -> str:
        return self.content


@dataclass(frozen=True, slots=True)
class JoinEvent:
    name: ClassVar[str] = "join"

    room: Room
    user: User
    self_join: bool = False


@dataclass(frozen=True, slots=True)
class PartEvent:
    name: ClassVar[str] = "part"

    room: Room
    user: User
    self_part: bool = False


@dataclass(frozen=True, slots=True)
class DisconnectEvent:
    name: ClassVar[str] = "disconnect"

    REQUESTED: ClassVar[str] = "requested"
    RETRIES_EXHAUSTED: ClassVar[str] = "retries-exhausted"
    AUTH_REJECTED: ClassVar[str] = "auth-rejected"

    reason: str
    error: BaseException | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Any protocol command without a dedicated event type."""

    name: ClassVar[str] = "raw"

    frame: Frame

    @property
    def command(self) -> str:
        return self.frame.command


ClientEvent = ReadyEvent | MessageEvent | JoinEvent | PartEvent | DisconnectEvent | RawEvent

EVENT_TYPES: tuple[type, ...] = (
    ReadyEvent,
    MessageEvent,
    JoinEvent,
    PartEvent,
    DisconnectEvent,
    RawEvent,
)
EVENT_NAMES = frozenset(t.name for t in EVENT_TYPES)

__all__ = [
    "ClientEvent",
    "DisconnectEvent",
    "EVENT_NAMES",
    "EVENT_TYPES",
    "JoinEvent",
    "MessageEvent",
    "PartEvent",
    "RawEvent",
    "ReadyEvent",
]
