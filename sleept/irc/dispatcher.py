"""Frame -> typed event dispatch."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..chat.models import Message, User
from ..chat.rooms import Room, RoomStore
from ..events import (
    ClientEvent,
    JoinEvent,
    MessageEvent,
    PartEvent,
    RawEvent,
    ReadyEvent,
)
from . import commands
from .parser import Frame
from .requests import join_key, part_key

if TYPE_CHECKING:  # pragma: no cover
    from .session import SessionManager

Handler = Callable[[Any], Awaitable[None] | None]


class EventDispatcher:
    """Turns inbound frames into events, updating the Room Store on the way.

    Frames are handled strictly one at a time in arrival order. Plain
    callables are invoked inline; coroutine functions are scheduled as
    tasks (in arrival order) so a handler awaiting a client request never
    blocks the frame that would answer it.
    """

    def __init__(self, session: SessionManager, rooms: RoomStore) -> None:
        self.session = session
        self.rooms = rooms
        self.disabled: frozenset[str] = frozenset()
        self._handlers: list[tuple[Any, Handler]] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._routes: dict[str, Callable[[Frame], ClientEvent | None]] = {
            commands.RPL_WELCOME: self._on_welcome,
            commands.PRIVMSG: self._on_privmsg,
            commands.JOIN: self._on_join,
            commands.PART: self._on_part,
            commands.NOTICE: self._on_notice,
            commands.RPL_NAMREPLY: self._on_names,
            commands.GLOBALUSERSTATE: self._on_global_userstate,
        }

    @property
    def log(self):
        return self.session.log

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #
    def subscribe(self, event_type: Any, handler: Handler) -> None:
        """Register ``handler`` for ``event_type`` (a class or ClientEvent)."""
        self._handlers.append((event_type, handler))

    def unsubscribe(self, event_type: Any, handler: Handler | None = None) -> int:
        before = len(self._handlers)
        self._handlers = [
            (t, h)
            for (t, h) in self._handlers
            if not (t is event_type and (handler is None or h == handler))
        ]
        return before - len(self._handlers)

    async def drain(self) -> None:
        """Wait for handler tasks scheduled so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_handlers(self) -> int:
        """Cancel running handler tasks, except the one calling this."""
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #
    async def dispatch(self, frame: Frame) -> ClientEvent | None:
        route = self._routes.get(frame.command)
        event = route(frame) if route else RawEvent(frame)
        if event is not None:
            await self.emit(event)
        return event

    async def emit(self, event: ClientEvent) -> None:
        if event.name in self.disabled:
            return
        for event_type, handler in list(self._handlers):
            if isinstance(event, event_type):
                await self._invoke(handler, event)

    async def _invoke(self, handler: Handler, event: ClientEvent) -> None:
        if inspect.iscoroutinefunction(handler):
            task = asyncio.create_task(handler(event))  # type: ignore[arg-type]
            self._tasks.add(task)
            task.add_done_callback(functools.partial(self._handler_done, event))
            return
        try:
            maybe = handler(event)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception as e:  # noqa: BLE001
            self._log_handler_error(event, e)

    def _handler_done(self, event: ClientEvent, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log_handler_error(event, error)

    def _log_handler_error(self, event: ClientEvent, error: BaseException) -> None:
        self.log.log_event(
            "dispatch",
            "handler_error",
            level=logging.ERROR,
            user=self.session.username,
            event=event.name,
            error=str(error),
            error_type=type(error).__name__,
        )

    # ------------------------------------------------------------------ #
    # Routes
    # ------------------------------------------------------------------ #
    def _known_room(self, frame: Frame) -> Room | None:
        room_id = frame.target
        room = self.rooms.get(room_id) if room_id else None
        if room is None:
            self.log.log_event(
                "dispatch",
                "unknown_room",
                level=logging.DEBUG,
                user=self.session.username,
                command=frame.command,
                target=room_id,
            )
        return room

    def _is_self(self, frame: Frame) -> bool:
        return bool(self.session.username) and frame.nick == self.session.username

    def _on_welcome(self, frame: Frame) -> ReadyEvent | None:
        user = self.session.user
        if user is None:
            return None
        return ReadyEvent(user=user, ready_at=self.session.ready_at or time.time())

    def _on_global_userstate(self, frame: Frame) -> RawEvent:
        if self.session.user is not None:
            self.session.user.update_from_tags(frame.tags)
        return RawEvent(frame)

    def _on_privmsg(self, frame: Frame) -> ClientEvent | None:
        if len(frame.params) < 2:
            return RawEvent(frame)
        room = self._known_room(frame)
        if room is None:
            return None
        author = room.upsert_user(frame.nick, frame.tags)
        content, action = _unwrap_action(frame.params[1])
        message = Message(
            id=frame.tags.get("id") or str(uuid.uuid4()),
            room=room,
            author=author,
            content=content,
            created_at=time.time(),
            action=action,
            tags=frame.tags,
        )
        room.messages.add(message)
        self.log.log_event(
            "chat",
            "privmsg",
            level=logging.DEBUG,
            user=self.session.username,
            room=room.id,
            author=author.id,
            chat_message=content,
        )
        reply = functools.partial(
            self.session.send_message, room.id, reply_to=message.id
        )
        return MessageEvent(message=message, _reply=reply)

    def _on_join(self, frame: Frame) -> ClientEvent | None:
        room_id = frame.target
        if room_id is None:
            return RawEvent(frame)
        if self._is_self(frame):
            room = self.rooms.upsert(room_id)
            room.joined = True
            user = room.upsert_user(frame.nick)
            self.session.requests.resolve(join_key(room.id), True)
            self.log.log_event(
                "room", "join_success", user=self.session.username, room=room.id
            )
            return JoinEvent(room=room, user=user, self_join=True)
        room = self._known_room(frame)
        if room is None:
            return None
        return JoinEvent(room=room, user=room.upsert_user(frame.nick))

    def _on_part(self, frame: Frame) -> ClientEvent | None:
        room_id = frame.target
        if room_id is None:
            return RawEvent(frame)
        if self._is_self(frame):
            room = self.rooms.get(room_id)
            user = (room.get_user(frame.nick) if room else None) or User(frame.nick)
            self.rooms.remove(room_id)
            self.session.requests.resolve(part_key(room_id), True)
            self.log.log_event(
                "room", "part_success", user=self.session.username, room=room_id
            )
            if room is None:
                return None
            return PartEvent(room=room, user=user, self_part=True)
        room = self._known_room(frame)
        if room is None:
            return None
        user = room.remove_user(frame.nick) or User(frame.nick)
        return PartEvent(room=room, user=user)

    def _on_notice(self, frame: Frame) -> RawEvent:
        room_id = frame.target
        msg_id = frame.tags.get("msg-id", "")
        if room_id and msg_id in commands.JOIN_FAILURE_MSG_IDS:
            if self.session.requests.resolve(join_key(room_id), False):
                self.log.log_event(
                    "room",
                    "join_refused",
                    level=logging.WARNING,
                    user=self.session.username,
                    room=room_id,
                    reason=msg_id,
                )
        return RawEvent(frame)

    def _on_names(self, frame: Frame) -> RawEvent:
        # :host 353 <nick> = #room :name1 name2 ...
        if len(frame.params) >= 4:
            room = self.rooms.get(frame.params[2])
            if room is not None:
                for login in frame.params[3].split():
                    room.upsert_user(login)
        return RawEvent(frame)


def _unwrap_action(text: str) -> tuple[str, bool]:
    if text.startswith(commands.ACTION_PREFIX) and text.endswith(commands.ACTION_SUFFIX):
        return text[len(commands.ACTION_PREFIX) : -len(commands.ACTION_SUFFIX)], True
    return text, False


