"""Asyncio client for Twitch chat over the IRC WebSocket gateway."""

from .chat import Message, MessageMetadata, Room, RoomStore, User  # noqa: F401
from .client import Client  # noqa: F401
from .config import ClientOptions  # noqa: F401
from .errors import *  # noqa: F401,F403
from .errors import __all__ as _errors_all
from .events import (  # noqa: F401
    ClientEvent,
    DisconnectEvent,
    JoinEvent,
    MessageEvent,
    PartEvent,
    RawEvent,
    ReadyEvent,
)
from .irc.session import ConnectionState  # noqa: F401

__version__ = "1.0.0"

__all__ = [
    "Client",
    "ClientEvent",
    "ClientOptions",
    "ConnectionState",
    "DisconnectEvent",
    "JoinEvent",
    "Message",
    "MessageEvent",
    "MessageMetadata",
    "PartEvent",
    "RawEvent",
    "ReadyEvent",
    "Room",
    "RoomStore",
    "User",
    *_errors_all,
]
