"""Chat domain entities."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .rooms import Room


def parse_badges(raw: str) -> dict[str, str]:
    """Parse a badges tag value such as ``moderator/1,subscriber/12``."""
    badges: dict[str, str] = {}
    for badge in raw.split(","):
        if not badge:
            continue
        name, _, version = badge.partition("/")
        badges[name] = version
    return badges


@dataclass(eq=False, slots=True)
class User:
    """A chatter as seen in one room.

    Display metadata is filled in opportunistically from message tags.
    Users live as long as the room that holds them; they are not evicted
    when their messages are swept.
    """

    id: str
    display_name: str | None = None
    color: str | None = None
    badges: dict[str, str] = field(default_factory=dict)
    user_id: str | None = None

    def __post_init__(self) -> None:
        self.id = self.id.lower()

    def update_from_tags(self, tags: Mapping[str, str]) -> None:
        if tags.get("display-name"):
            self.display_name = tags["display-name"]
        if tags.get("color"):
            self.color = tags["color"]
        if "badges" in tags:
            self.badges = parse_badges(tags["badges"])
        if tags.get("user-id"):
            self.user_id = tags["user-id"]

    @property
    def name(self) -> str:
        return self.display_name or self.id

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False, slots=True)
class Message:
    """A chat message held in its room's cache.

    ``room`` and ``author`` are plain references; the Room Store owns both.
    """

    id: str
    room: Room
    author: User
    content: str
    created_at: float = field(default_factory=time.time)
    edited_at: float | None = None
    action: bool = False
    tags: Mapping[str, str] = field(default_factory=dict, repr=False)

    @property
    def effective_timestamp(self) -> float:
        """Timestamp the sweep compares against: the edit time if any."""
        return self.edited_at if self.edited_at is not None else self.created_at

    def __str__(self) -> str:
        return self.content


@dataclass(frozen=True, slots=True)
class MessageMetadata:
    """What ``send`` reports back about a message written to the wire."""

    room: str
    content: str
    sent_at: float
    reply_to: str | None = None
