from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..chat.rooms import normalize_room_name
from ..constants import (
    AUTH_TIMEOUT_SECONDS,
    CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MESSAGE_CACHE_MAX_SIZE,
    DEFAULT_RETRY_LIMIT,
    IRC_WS_URL,
    REQUEST_TIMEOUT_SECONDS,
)
from ..errors import InvalidConfiguration
from ..events import EVENT_NAMES


def normalize_channels(channels: list[str] | Any) -> list[str]:
    """Normalize a list of room names to ``#name`` form.

    Strips whitespace, lowercases, enforces the sigil, drops empties and
    de-duplicates while keeping the configured order.
    """
    if not isinstance(channels, list | tuple):
        raise ValueError("channels must be a list")
    normalized: list[str] = []
    for c in channels:
        if not isinstance(c, str):
            raise ValueError("channel names must be strings")
        if c.strip().lstrip("#"):
            normalized.append(normalize_room_name(c))
    return list(dict.fromkeys(normalized))


class ClientOptions(BaseModel):
    """Options a Client is constructed with.

    Attributes:
        token: OAuth token; falls back to the CLIENT_TOKEN environment value.
        username: Login name sent as NICK.
        channels: Rooms created at construction and joined on login.
        message_cache_max_size: Messages kept per room (<= 0: no bound).
        message_cache_lifetime: Seconds a message survives a sweep (<= 0: forever).
        message_sweep_interval: Seconds between sweeps (<= 0: never).
        retry_limit: Reconnect attempts after an unexpected disconnect.
        disabled_events: Event names never delivered to callbacks.
        debug: Verbose event logging.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    token: str | None = None
    username: str | None = None
    channels: list[str] = Field(default_factory=list)
    message_cache_max_size: int = DEFAULT_MESSAGE_CACHE_MAX_SIZE
    message_cache_lifetime: float = 0
    message_sweep_interval: float = 0
    retry_limit: int = Field(default=DEFAULT_RETRY_LIMIT, ge=0)
    disabled_events: list[str] = Field(default_factory=list)
    debug: bool = False
    url: str = IRC_WS_URL
    connect_timeout: float = Field(default=CONNECT_TIMEOUT_SECONDS, gt=0)
    auth_timeout: float = Field(default=AUTH_TIMEOUT_SECONDS, gt=0)
    request_timeout: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0)

    @field_validator("channels", mode="before")
    @classmethod
    def validate_channels(cls, v: Any) -> list[str]:
        return normalize_channels(v)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        if not v:
            raise ValueError("username must not be blank")
        return v

    @field_validator("disabled_events")
    @classmethod
    def validate_disabled_events(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - EVENT_NAMES)
        if unknown:
            raise ValueError(f"unknown event names: {', '.join(unknown)}")
        return v

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None = None, **overrides: Any) -> ClientOptions:
        """Build options, converting validation failures to InvalidConfiguration."""
        merged = {**(data or {}), **overrides}
        try:
            return cls.model_validate(merged)
        except ValidationError as e:
            raise InvalidConfiguration(
                f"Invalid client options: {e.error_count()} error(s)",
                data={"errors": [_describe(err) for err in e.errors()]},
            ) from e


def _describe(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "options"
    return f"{location}: {error.get('msg', 'invalid')}"
