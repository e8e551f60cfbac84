"""Session manager: connection lifecycle, authentication, request correlation."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import partial
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..chat.models import MessageMetadata, User
from ..chat.rooms import RoomStore, normalize_room_name
from ..config.model import ClientOptions
from ..constants import (
    BACKOFF_BASE_DELAY,
    BACKOFF_JITTER_SECONDS,
    BACKOFF_MAX_DELAY,
    KEEPALIVE_CHECK_INTERVAL,
    RATE_LIMIT_CAPACITY,
    RATE_LIMIT_WINDOW_SECONDS,
    RECONNECT_DELAY_SECONDS,
    SERVER_ACTIVITY_TIMEOUT,
)
from ..errors import (
    AuthRejected,
    AuthTimeout,
    ConnectionFailed,
    InvalidParameter,
    MalformedFrame,
    NotConnected,
    RequestTimeout,
    RetriesExhausted,
    SendFailed,
    SleeptError,
    is_retryable_error,
    log_error,
)
from ..events import DisconnectEvent, ReadyEvent
from ..logs.logger import ClientLogger, logger as default_logger
from ..rate import CommandQueue, TokenBucket
from . import commands
from .dispatcher import EventDispatcher
from .heartbeat import SessionHeartbeat
from .parser import Frame, encode_frame, parse_frame
from .requests import LOGIN, PendingRequest, PendingRequests, RequestKey, join_key, part_key, ping_key
from .transport import Transport, WebSocketTransport

TransportFactory = Callable[[str], Awaitable[Transport]]
Sleep = Callable[[float], Awaitable[None]]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    RECONNECTING = "reconnecting"


async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise


class SessionManager:
    """Owns the transport and drives the connection state machine.

    One transport at a time. Inbound lines are read by a single task and
    handed to the EventDispatcher in arrival order; outbound commands go
    through the rate-limited CommandQueue, except for the authentication
    handshake and keep-alive replies which are written directly.

    Attributes:
        state (ConnectionState): Current lifecycle state.
        username (str | None): Identity confirmed by the server.
        user (User | None): The account the session is logged in as.
        requests (PendingRequests): Correlated calls awaiting a reply.
        queue (CommandQueue): Outbound rate limiter.
        dispatcher (EventDispatcher): Frame to event router.
    """

    def __init__(
        self,
        options: ClientOptions,
        rooms: RoomStore,
        *,
        transport_factory: TransportFactory | None = None,
        bucket: TokenBucket | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        keepalive_interval: float = KEEPALIVE_CHECK_INTERVAL,
        activity_timeout: float = SERVER_ACTIVITY_TIMEOUT,
        log: ClientLogger = default_logger,
    ) -> None:
        self.options = options
        self.rooms = rooms
        self.log = log
        self.sleep = sleep
        self.clock = clock
        self._transport_factory = transport_factory or WebSocketTransport.open
        self.state = ConnectionState.DISCONNECTED
        self.transport: Transport | None = None
        self.username: str | None = options.username
        self.user: User | None = None
        self.ready_at: float | None = None
        self.last_activity = 0.0
        self._ready_clock = 0.0
        self._ready_event: ReadyEvent | None = None
        self._token: str | None = None
        self._nick: str = options.username or commands.anonymous_nick()
        self._closing = False

        self.requests = PendingRequests()
        self.queue = CommandQueue(
            bucket
            or TokenBucket(RATE_LIMIT_CAPACITY, RATE_LIMIT_WINDOW_SECONDS, clock=clock),
            sleep=sleep,
            clock=clock,
            log=log,
        )
        self.dispatcher = EventDispatcher(self, rooms)
        self.dispatcher.disabled = frozenset(options.disabled_events)
        self.keepalive_interval = keepalive_interval
        self.heartbeat = SessionHeartbeat(
            self,
            check_interval=keepalive_interval or KEEPALIVE_CHECK_INTERVAL,
            activity_timeout=activity_timeout,
        )

        self._connect_task: asyncio.Task[ReadyEvent | None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._autojoin_task: asyncio.Task[None] | None = None
        self._disconnect_lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # State helpers
    # ------------------------------------------------------------------ #
    @property
    def ready(self) -> bool:
        return self.state is ConnectionState.READY

    def uptime(self) -> float:
        """Seconds since the session last became ready, 0 when not ready."""
        if not self.ready:
            return 0.0
        return max(0.0, self.clock() - self._ready_clock)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.log.log_event(
            "session",
            "state_change",
            level=logging.DEBUG,
            user=self.username,
            old=self.state.value,
            new=state.value,
        )
        self.state = state

    def _require_ready(self, operation: str) -> None:
        if not self.ready:
            raise NotConnected(
                f"Cannot {operation} while {self.state.value}",
                data={"operation": operation, "state": self.state.value},
            )

    # ------------------------------------------------------------------ #
    # Login / connect
    # ------------------------------------------------------------------ #
    async def login(
        self, token: str | None = None, username: str | None = None
    ) -> ReadyEvent | None:
        """Connect and authenticate.

        ``token=None`` logs in anonymously. Returns the ReadyEvent, or None
        when ``disconnect()`` cancels the attempt.

        Raises:
            ConnectionFailed: The transport could not be opened.
            AuthRejected: The server refused the credentials.
            AuthTimeout: No welcome reply arrived in time.
        """
        if self.ready:
            return self._ready_event
        reconnect = self._reconnect_task
        if reconnect is not None and not reconnect.done():
            await asyncio.shield(reconnect)
            if not self.ready:
                raise NotConnected("Reconnect did not restore the session")
            return self._ready_event

        task = self._connect_task
        if task is None or task.done():
            self._token = token
            if username:
                self._nick = username.strip().lower()
            elif token is None:
                self._nick = commands.anonymous_nick()
            self._closing = False
            task = asyncio.create_task(
                self._connect_once(failure_state=ConnectionState.DISCONNECTED),
                name="sleept-connect",
            )
            self._connect_task = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current is not None and current.cancelling()):
                return None
            raise

    async def _connect_once(self, *, failure_state: ConnectionState) -> ReadyEvent | None:
        self._set_state(ConnectionState.CONNECTING)
        url = self.options.url
        self.log.log_event("session", "connecting", user=self._nick, url=url)
        try:
            transport = await asyncio.wait_for(
                self._transport_factory(url), self.options.connect_timeout
            )
        except TimeoutError as e:
            self._set_state(failure_state)
            raise ConnectionFailed(
                f"Timed out opening connection after {self.options.connect_timeout}s",
                data={"url": url},
            ) from e
        except (ConnectionFailed, OSError) as e:
            self._set_state(failure_state)
            self.log.log_event(
                "session",
                "connect_failed",
                level=logging.WARNING,
                user=self._nick,
                error=str(e),
            )
            if isinstance(e, ConnectionFailed):
                raise
            raise ConnectionFailed(f"Connection failed: {str(e)}", data={"url": url}) from e

        self.transport = transport
        self.last_activity = self.clock()
        self._set_state(ConnectionState.AUTHENTICATING)
        request, _ = self.requests.open(LOGIN, cancel_result=None)
        self._reader_task = asyncio.create_task(
            self._read_loop(transport), name="sleept-reader"
        )
        try:
            for line in commands.auth_lines(self._token, self._nick):
                await transport.send_line(line)
            return await asyncio.wait_for(
                asyncio.shield(request.future), self.options.auth_timeout
            )
        except TimeoutError as e:
            await self._abort_connect(failure_state, "authentication timed out")
            raise AuthTimeout(
                f"No welcome reply within {self.options.auth_timeout}s",
                data={"nick": self._nick},
            ) from e
        except SendFailed as e:
            await self._abort_connect(failure_state, "handshake send failed")
            raise ConnectionFailed(f"Handshake failed: {str(e)}") from e
        except (AuthRejected, ConnectionFailed):
            await self._abort_connect(failure_state, "authentication failed")
            raise
        finally:
            self.requests.discard(request)

    async def _abort_connect(self, failure_state: ConnectionState, reason: str) -> None:
        await self._teardown(reason)
        self._set_state(failure_state)

    async def _complete_login(self, transport: Transport, frame: Frame) -> None:
        identity = (frame.params[0] if frame.params else self._nick).lower()
        self.username = identity
        if self.user is None or self.user.id != identity:
            self.user = User(identity)
        self.ready_at = time.time()
        self._ready_clock = self.clock()
        self._set_state(ConnectionState.READY)
        self.queue.start(transport.send_line)
        if self.keepalive_interval > 0:
            self._heartbeat_task = asyncio.create_task(
                self.heartbeat.run(), name="sleept-heartbeat"
            )
        self.log.log_event("session", "ready", user=identity, rooms=len(self.rooms))
        event = await self.dispatcher.dispatch(frame)
        if isinstance(event, ReadyEvent):
            self._ready_event = event
        self._replay_pending()
        self.requests.resolve(LOGIN, event)
        self._autojoin_task = asyncio.create_task(
            self._rejoin_rooms(), name="sleept-autojoin"
        )

    async def _rejoin_rooms(self) -> None:
        for room in self.rooms.values():
            if room.joined or not self.ready:
                continue
            try:
                await self.join(room.id)
            except SleeptError as e:
                self.log.log_event(
                    "room",
                    "rejoin_failed",
                    level=logging.WARNING,
                    user=self.username,
                    room=room.id,
                    error=str(e),
                )

    # ------------------------------------------------------------------ #
    # Inbound
    # ------------------------------------------------------------------ #
    async def _read_loop(self, transport: Transport) -> None:
        try:
            async for line in transport.lines():
                self.last_activity = self.clock()
                try:
                    frame = parse_frame(line)
                except MalformedFrame as e:
                    self.log.log_event(
                        "irc",
                        "malformed_frame",
                        level=logging.WARNING,
                        user=self.username,
                        error=str(e),
                        line=line[:200],
                    )
                    continue
                try:
                    await self._handle_frame(transport, frame)
                except SleeptError as e:
                    log_error("Frame handling failed", e, {"command": frame.command})
        except (OSError, SleeptError) as e:
            log_error("Transport read failed", e, {"user": self.username})
        self._on_transport_closed(transport)

    async def _handle_frame(self, transport: Transport, frame: Frame) -> None:
        command = frame.command
        if command == commands.PING:
            await self._answer_ping(transport, frame)
            return
        if command == commands.PONG:
            self.requests.resolve(ping_key(frame.trailing), self.clock())
            return
        if command == commands.RECONNECT:
            self.log.log_event(
                "irc", "server_reconnect", level=logging.WARNING, user=self.username
            )
            await transport.close()
            return
        if self.state is ConnectionState.AUTHENTICATING:
            if command == commands.RPL_WELCOME:
                await self._complete_login(transport, frame)
                return
            if command == commands.NOTICE and commands.is_auth_failure(frame.trailing):
                self.log.log_event(
                    "auth",
                    "rejected",
                    level=logging.ERROR,
                    user=self._nick,
                    reason=frame.trailing,
                )
                self.requests.fail(
                    LOGIN, AuthRejected(frame.trailing, data={"nick": self._nick})
                )
                return
        await self.dispatcher.dispatch(frame)

    async def _answer_ping(self, transport: Transport, frame: Frame) -> None:
        payload = list(frame.params) or ["tmi.twitch.tv"]
        try:
            await transport.send_line(encode_frame(commands.PONG, payload))
        except SendFailed as e:
            self.log.log_event(
                "irc", "pong_failed", level=logging.WARNING, user=self.username, error=str(e)
            )

    def _on_transport_closed(self, transport: Transport) -> None:
        if transport is not self.transport or self._closing:
            return
        self.log.log_event(
            "session",
            "connection_lost",
            level=logging.WARNING,
            user=self.username,
            state=self.state.value,
        )
        if self.state is ConnectionState.AUTHENTICATING:
            self.requests.fail(LOGIN, ConnectionFailed("Connection closed during authentication"))
        elif self.state is ConnectionState.READY:
            self._reconnect_task = asyncio.create_task(
                self._reconnect(), name="sleept-reconnect"
            )

    # ------------------------------------------------------------------ #
    # Reconnect
    # ------------------------------------------------------------------ #
    async def _reconnect(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        await _cancel_task(self._autojoin_task)
        await self._teardown("connection lost")
        self.rooms.mark_all_parted()
        limit = self.options.retry_limit
        if limit <= 0:
            await self._give_up(
                RetriesExhausted("Reconnect disabled (retry limit is 0)", data={"attempts": 0})
            )
            return
        self.log.log_event(
            "session", "reconnecting", level=logging.WARNING, user=self.username, retry_limit=limit
        )
        await self.sleep(RECONNECT_DELAY_SECONDS)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(limit),
            wait=wait_exponential(multiplier=BACKOFF_BASE_DELAY, max=BACKOFF_MAX_DELAY)
            + wait_random(0, BACKOFF_JITTER_SECONDS),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )
        try:
            await retrying(self._connect_once, failure_state=ConnectionState.RECONNECTING)
        except AuthRejected as e:
            self._set_state(ConnectionState.DISCONNECTED)
            self.requests.fail_all(e)
            log_error("Reconnect rejected", e, {"user": self.username})
            await self.dispatcher.emit(DisconnectEvent(DisconnectEvent.AUTH_REJECTED, e))
        except (ConnectionFailed, AuthTimeout, OSError) as e:
            error = RetriesExhausted(
                f"Gave up reconnecting after {limit} attempt(s)",
                data={"attempts": limit, "last_error": str(e)},
            )
            error.__cause__ = e
            await self._give_up(error)
        else:
            self.log.log_event("session", "reconnected", user=self.username)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        self.log.log_event(
            "session",
            "reconnect_retry",
            level=logging.WARNING,
            user=self.username,
            attempt=retry_state.attempt_number,
            retry_limit=self.options.retry_limit,
            error=str(error) if error else None,
        )

    async def _give_up(self, error: RetriesExhausted) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        self.requests.fail_all(error)
        log_error("Reconnect failed", error, {"user": self.username})
        await self.dispatcher.emit(
            DisconnectEvent(DisconnectEvent.RETRIES_EXHAUSTED, error)
        )

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #
    async def _teardown(self, reason: str) -> None:
        await _cancel_task(self._heartbeat_task)
        await _cancel_task(self._reader_task)
        self._heartbeat_task = self._reader_task = None
        transport, self.transport = self.transport, None
        if transport is not None:
            await transport.close()
        await self.queue.stop(reason)

    async def drop_connection(self, reason: str) -> None:
        """Close the transport as if the peer had gone away."""
        self.log.log_event(
            "session", "dropping_connection", level=logging.WARNING, user=self.username, reason=reason
        )
        if self.transport is not None:
            await self.transport.close()

    async def disconnect(self) -> None:
        """Close the session. Safe to call repeatedly and concurrently."""
        async with self._disconnect_lock:
            previous = self.state
            self._closing = True
            await _cancel_task(self._connect_task)
            await _cancel_task(self._reconnect_task)
            await _cancel_task(self._autojoin_task)
            self._connect_task = self._reconnect_task = self._autojoin_task = None
            cancelled = self.requests.cancel_all()
            await self._teardown("disconnect requested")
            self.rooms.mark_all_parted()
            self._set_state(ConnectionState.DISCONNECTED)
            # Handlers of the final disconnect event are scheduled after this
            await self.dispatcher.cancel_handlers()
            if previous is ConnectionState.DISCONNECTED:
                return
            self.log.log_event(
                "session", "disconnected", user=self.username, cancelled_requests=cancelled
            )
            await self.dispatcher.emit(DisconnectEvent(DisconnectEvent.REQUESTED))

    # ------------------------------------------------------------------ #
    # Correlated requests
    # ------------------------------------------------------------------ #
    async def _correlated(
        self, key: RequestKey, line: str, cancel_result: Any
    ) -> tuple[Any, asyncio.Future[float] | None]:
        request, created = self.requests.open(key, cancel_result, line)
        written: asyncio.Future[float] | None = None
        if created:
            written = self._send_request(request, line)
        timeout = self.options.request_timeout
        try:
            result = await asyncio.wait_for(asyncio.shield(request.future), timeout)
        except TimeoutError as e:
            self.requests.discard(request)
            if written is not None and not written.done():
                written.cancel()
            raise RequestTimeout(
                f"No reply to {key[0]} within {timeout}s",
                data={"request": key[0], "target": key[1] if len(key) > 1 else None},
            ) from e
        return result, written

    def _send_request(self, request: PendingRequest, line: str) -> asyncio.Future[float]:
        written = self.queue.enqueue(line)
        written.add_done_callback(partial(self._on_written, request))
        return written

    def _replay_pending(self) -> None:
        # Replies to lines written on the previous connection will never arrive
        for request in self.requests.outstanding():
            if request.key == LOGIN or request.line is None:
                continue
            if request.key[0] == "ping":
                self.requests.resolve(request.key, request.cancel_result)
                continue
            self.log.log_event(
                "session",
                "request_replayed",
                level=logging.DEBUG,
                user=self.username,
                request=request.key[0],
                target=request.key[1],
            )
            self._send_request(request, request.line)

    def _on_written(self, request: PendingRequest, written: asyncio.Future[float]) -> None:
        if written.cancelled():
            return
        error = written.exception()
        if error is not None and self.requests.get(request.key) is request:
            self.requests.fail(request.key, error)

    async def join(self, room_name: str) -> bool:
        """Join a room; resolves once the server echoes our JOIN.

        Returns False if the server refuses the room or the call is
        cancelled by ``disconnect()``.
        """
        self._require_ready("join")
        room_id = normalize_room_name(room_name)
        room = self.rooms.get(room_id)
        if room is not None and room.joined:
            return True
        self.log.log_event("room", "join_attempt", level=logging.DEBUG, user=self.username, room=room_id)
        result, _ = await self._correlated(
            join_key(room_id), encode_frame(commands.JOIN, [room_id]), False
        )
        return bool(result)

    async def leave(self, room_name: str) -> bool:
        self._require_ready("leave")
        room_id = normalize_room_name(room_name)
        if self.rooms.get(room_id) is None:
            return False
        result, _ = await self._correlated(
            part_key(room_id), encode_frame(commands.PART, [room_id]), False
        )
        return bool(result)

    async def ping(self) -> float | None:
        """Round-trip time in seconds, measured from when the probe was written."""
        self._require_ready("ping")
        nonce = secrets.token_hex(8)
        received, written = await self._correlated(
            ping_key(nonce), encode_frame(commands.PING, [nonce]), None
        )
        if received is None or written is None:
            return None
        return max(0.0, received - written.result())

    async def send_keepalive(self) -> None:
        transport = self.transport
        if transport is None:
            return
        try:
            await transport.send_line(encode_frame(commands.PING, ["tmi.twitch.tv"]))
        except SendFailed as e:
            self.log.log_event(
                "irc", "keepalive_failed", level=logging.WARNING, user=self.username, error=str(e)
            )

    # ------------------------------------------------------------------ #
    # Outbound chat
    # ------------------------------------------------------------------ #
    async def send_message(
        self, room_name: str, text: str, reply_to: str | None = None
    ) -> MessageMetadata:
        self._require_ready("send")
        room_id = normalize_room_name(room_name)
        body = text
        if text.startswith("/me "):
            body = f"{commands.ACTION_PREFIX}{text[4:]}{commands.ACTION_SUFFIX}"
        tags = {"reply-parent-msg-id": reply_to} if reply_to else None
        await self.queue.send(encode_frame(commands.PRIVMSG, [room_id, body], tags=tags))
        self.log.log_event(
            "chat", "sent", level=logging.DEBUG, user=self.username, room=room_id, chat_message=text
        )
        return MessageMetadata(
            room=room_id, content=text, sent_at=time.time(), reply_to=reply_to
        )

    async def send_raw(self, line: str) -> float:
        self._require_ready("send")
        if any(c in line for c in "\r\n\0"):
            raise InvalidParameter("Raw line contains a line terminator", data={"line": line[:80]})
        return await self.queue.send(line)


__all__ = ["ConnectionState", "SessionManager", "TransportFactory"]
