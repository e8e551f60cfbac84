"""Twitch IRC command set and protocol constants."""

from __future__ import annotations

import secrets

from .parser import encode_frame

# Commands
PRIVMSG = "PRIVMSG"
JOIN = "JOIN"
PART = "PART"
PING = "PING"
PONG = "PONG"
NOTICE = "NOTICE"
RECONNECT = "RECONNECT"
CAP = "CAP"
GLOBALUSERSTATE = "GLOBALUSERSTATE"

# Numerics
RPL_WELCOME = "001"
RPL_NAMREPLY = "353"

CAPABILITIES = ("twitch.tv/tags", "twitch.tv/commands", "twitch.tv/membership")

ANONYMOUS_PASSWORD = "SCHMOOPIIE"
ANONYMOUS_NICK_PREFIX = "justinfan"
TOKEN_PREFIX = "oauth:"

# NOTICE texts the server sends before closing an unauthenticated socket
AUTH_FAILURE_NOTICES = (
    "login authentication failed",
    "login unsuccessful",
    "improperly formatted auth",
    "invalid nick",
)

# NOTICE msg-id values that mean a JOIN for that room will never be echoed
JOIN_FAILURE_MSG_IDS = frozenset(
    {
        "msg_channel_suspended",
        "msg_banned",
        "msg_room_not_found",
        "tos_ban",
        "msg_channel_blocked",
    }
)

ACTION_PREFIX = "\x01ACTION "
ACTION_SUFFIX = "\x01"


def normalize_token(token: str) -> str:
    return token if token.startswith(TOKEN_PREFIX) else f"{TOKEN_PREFIX}{token}"


def anonymous_nick() -> str:
    return f"{ANONYMOUS_NICK_PREFIX}{secrets.randbelow(90000) + 10000}"


def auth_lines(token: str | None, nick: str) -> list[str]:
    """Lines sent right after the transport opens, in order."""
    password = normalize_token(token) if token else ANONYMOUS_PASSWORD
    return [
        encode_frame(CAP, ["REQ", " ".join(CAPABILITIES)]),
        encode_frame("PASS", [password]),
        encode_frame("NICK", [nick.lower()]),
    ]


def is_auth_failure(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in AUTH_FAILURE_NOTICES)
