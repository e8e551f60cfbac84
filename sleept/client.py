"""Client facade: the public entry point tying the session pieces together."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Literal

from .chat.models import MessageMetadata
from .chat.rooms import Room, RoomStore
from .config.model import ClientOptions
from .constants import TOKEN_ENV_VAR
from .events import ClientEvent, ReadyEvent
from .irc.session import ConnectionState, SessionManager, TransportFactory
from .logs.logger import ClientLogger
from .rate import TokenBucket

Handler = Callable[[Any], Awaitable[None] | None]


class Client:
    """Twitch chat client.

    Owns exactly one RoomStore and one SessionManager. Options are
    validated up front; an invalid option raises InvalidConfiguration
    before any connection is attempted.

    Example:
        async with Client(username="mybot", channels=["somechannel"]) as client:
            client.on(MessageEvent, handle_message)
            await client.login()
    """

    def __init__(
        self,
        options: ClientOptions | Mapping[str, Any] | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        bucket: TokenBucket | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        keepalive_interval: float | None = None,
        **overrides: Any,
    ) -> None:
        if isinstance(options, ClientOptions):
            self.options = (
                ClientOptions.from_mapping(options.model_dump(), **overrides)
                if overrides
                else options
            )
        else:
            self.options = ClientOptions.from_mapping(options, **overrides)
        self.token: str | None = self.options.token or os.environ.get(TOKEN_ENV_VAR) or None
        self.log = ClientLogger(f"sleept.{id(self):x}", debug=self.options.debug)
        self.rooms = RoomStore(
            self.options.channels,
            cache_max_size=self.options.message_cache_max_size,
            cache_lifetime=self.options.message_cache_lifetime,
        )
        session_kwargs: dict[str, Any] = {}
        if keepalive_interval is not None:
            session_kwargs["keepalive_interval"] = keepalive_interval
        self.session = SessionManager(
            self.options,
            self.rooms,
            transport_factory=transport_factory,
            bucket=bucket,
            sleep=sleep,
            clock=clock,
            log=self.log,
            **session_kwargs,
        )
        self._sleep = sleep
        self._sweep_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"Client(user={self.session.username!r}, state={self.state.value})"

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def ready(self) -> bool:
        return self.session.ready

    @property
    def user(self):
        return self.session.user

    def get_room(self, room_name: str) -> Room | None:
        return self.rooms.get(room_name)

    def uptime(self) -> float:
        return self.session.uptime()

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #
    def on(self, event_type: Any, handler: Handler | None = None):
        """Register a callback for an event class.

        ``ClientEvent`` subscribes to every event. Usable as a decorator
        when ``handler`` is omitted.
        """
        if handler is None:

            def decorator(func: Handler) -> Handler:
                self.session.dispatcher.subscribe(event_type, func)
                return func

            return decorator
        self.session.dispatcher.subscribe(event_type, handler)
        return handler

    def off(self, event_type: Any, handler: Handler | None = None) -> int:
        return self.session.dispatcher.unsubscribe(event_type, handler)

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #
    async def login(self, token: str | Literal[False] | None = None) -> ReadyEvent | None:
        """Log in and join the configured rooms.

        ``token`` overrides the configured token; ``False`` forces an
        anonymous read-only login.
        """
        resolved = None if token is False else (token or self.token)
        username = self.options.username if resolved else None
        event = await self.session.login(resolved, username)
        if event is not None:
            self._start_sweep()
        return event

    async def disconnect(self) -> None:
        sweep, self._sweep_task = self._sweep_task, None
        if sweep is not None and not sweep.done():
            sweep.cancel()
            try:
                await sweep
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
        await self.session.disconnect()

    async def join(self, room_name: str) -> bool:
        return await self.session.join(room_name)

    async def leave(self, room_name: str) -> bool:
        return await self.session.leave(room_name)

    part = leave

    async def ping(self) -> float | None:
        return await self.session.ping()

    async def send(self, room_name: str, text: str) -> MessageMetadata:
        return await self.session.send_message(room_name, text)

    say = send

    async def send_raw(self, line: str) -> float:
        """Queue a raw protocol line through the rate limiter."""
        return await self.session.send_raw(line)

    # ------------------------------------------------------------------ #
    # Message cache sweep
    # ------------------------------------------------------------------ #
    def sweep_messages(self, lifetime: float | None = None) -> int:
        """Sweep every room's cache; returns messages removed or -1.

        -1 means retention is unbounded (``lifetime <= 0``) and nothing
        was inspected.
        """
        lifetime = self.options.message_cache_lifetime if lifetime is None else lifetime
        if lifetime <= 0:
            return -1
        now = time.time()
        removed = 0
        for room in self.rooms.values():
            removed += max(room.messages.sweep(now=now, lifetime=lifetime), 0)
        self.log.log_event(
            "cache",
            "swept",
            level=logging.DEBUG,
            user=self.session.username,
            removed=removed,
            rooms=len(self.rooms),
        )
        return removed

    def _start_sweep(self) -> None:
        interval = self.options.message_sweep_interval
        if interval <= 0 or (self._sweep_task is not None and not self._sweep_task.done()):
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(interval), name="sleept-sweep")

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await self._sleep(interval)
            self.sweep_messages()


__all__ = ["Client", "ClientEvent"]
