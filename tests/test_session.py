import asyncio

import pytest

from sleept.client import Client
from sleept.errors import (
    AuthRejected,
    AuthTimeout,
    ConnectionFailed,
    InvalidParameter,
    NotConnected,
    RequestTimeout,
    RetriesExhausted,
)
from sleept.events import DisconnectEvent, JoinEvent, MessageEvent, ReadyEvent
from sleept.irc.session import ConnectionState
from sleept.rate import TokenBucket
from tests.fixtures.fake_transport import FakeTransportFactory
from tests.fixtures.frames import PRIVMSG_HELLO
from tests.fixtures.helpers import settle


@pytest.mark.asyncio
async def test_login_reaches_ready(client, transport_factory):
    readies: list[ReadyEvent] = []
    client.on(ReadyEvent, readies.append)

    event = await client.login("secret")

    assert isinstance(event, ReadyEvent)
    assert event.user.id == "tester"
    assert client.state is ConnectionState.READY
    assert readies == [event]
    assert transport_factory.latest.sent[:3] == [
        "CAP REQ :twitch.tv/tags twitch.tv/commands twitch.tv/membership",
        "PASS oauth:secret",
        "NICK tester",
    ]


@pytest.mark.asyncio
async def test_login_twice_returns_same_ready(ready_client, transport_factory):
    again = await ready_client.login()
    assert isinstance(again, ReadyEvent)
    assert transport_factory.calls == 1


@pytest.mark.asyncio
async def test_anonymous_login(client, transport_factory):
    event = await client.login(False)
    sent = transport_factory.latest.sent
    assert "PASS SCHMOOPIIE" in sent
    assert event.user.id.startswith("justinfan")


@pytest.mark.asyncio
async def test_token_from_environment(monkeypatch, make_client, transport_factory):
    monkeypatch.setenv("CLIENT_TOKEN", "fromenv")
    c = make_client()
    try:
        await c.login()
        assert "PASS oauth:fromenv" in transport_factory.latest.sent
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_join_normalizes_and_stores_room(ready_client):
    assert await ready_client.join("room") is True
    room = ready_client.get_room("#room")
    assert room is not None and room.joined


@pytest.mark.asyncio
async def test_concurrent_joins_share_one_wire_command(ready_client, transport_factory):
    first, second = await asyncio.gather(ready_client.join("#room"), ready_client.join("room"))
    assert first is second is True
    assert transport_factory.latest.commands("JOIN") == ["JOIN #room"]


@pytest.mark.asyncio
async def test_join_of_joined_room_skips_wire(ready_client, transport_factory):
    await ready_client.join("room")
    assert await ready_client.join("#ROOM") is True
    assert len(transport_factory.latest.commands("JOIN")) == 1


@pytest.mark.asyncio
async def test_join_timeout(make_client, transport_factory):
    transport_factory.transport_kwargs["echo"] = False
    c = make_client(request_timeout=0.05)
    try:
        await c.login("secret")
        with pytest.raises(RequestTimeout):
            await c.join("room")
        assert not c.session.requests
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_leave(ready_client, transport_factory):
    await ready_client.join("room")
    assert await ready_client.leave("ROOM") is True
    assert ready_client.get_room("room") is None
    assert transport_factory.latest.commands("PART") == ["PART #room"]


@pytest.mark.asyncio
async def test_leave_unknown_room_is_false_without_wire(ready_client, transport_factory):
    assert await ready_client.leave("nowhere") is False
    assert transport_factory.latest.commands("PART") == []


@pytest.mark.asyncio
async def test_operations_before_login_fail_fast(client, transport_factory):
    with pytest.raises(NotConnected):
        await client.join("room")
    with pytest.raises(NotConnected):
        await client.leave("room")
    with pytest.raises(NotConnected):
        await client.ping()
    with pytest.raises(NotConnected):
        await client.send("room", "hi")
    assert transport_factory.calls == 0


@pytest.mark.asyncio
async def test_ping_measures_round_trip(ready_client, transport_factory):
    rtt = await ready_client.ping()
    assert isinstance(rtt, float) and rtt >= 0
    assert len(transport_factory.latest.commands("PING")) == 1


@pytest.mark.asyncio
async def test_configured_channels_joined_on_login(make_client, transport_factory):
    c = make_client(channels=["One", "#two"])
    joins: list[JoinEvent] = []
    c.on(JoinEvent, joins.append)
    try:
        await c.login("secret")
        await settle(lambda: len(joins) == 2)
        assert transport_factory.latest.commands("JOIN") == ["JOIN #one", "JOIN #two"]
        assert all(room.joined for room in c.rooms)
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(ready_client):
    events: list[DisconnectEvent] = []
    ready_client.on(DisconnectEvent, events.append)

    await ready_client.disconnect()
    await ready_client.disconnect()
    await asyncio.gather(ready_client.disconnect(), ready_client.disconnect())

    assert ready_client.state is ConnectionState.DISCONNECTED
    assert [e.reason for e in events] == [DisconnectEvent.REQUESTED]


@pytest.mark.asyncio
async def test_disconnect_resolves_pending_requests_as_cancelled(ready_client, transport_factory):
    transport_factory.latest.echo = False
    join = asyncio.create_task(ready_client.join("room"))
    await settle(lambda: transport_factory.latest.commands("JOIN"))
    await ready_client.disconnect()
    assert await join is False


@pytest.mark.asyncio
async def test_auth_rejected_does_not_retry():
    factory = FakeTransportFactory(reject=True)
    c = Client(transport_factory=factory, username="tester", keepalive_interval=0)
    try:
        with pytest.raises(AuthRejected):
            await c.login("bad")
        assert c.state is ConnectionState.DISCONNECTED
        assert factory.calls == 1
        assert factory.latest.closed
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_auth_timeout(make_client, transport_factory):
    transport_factory.transport_kwargs["welcome"] = False
    c = make_client(auth_timeout=0.05)
    try:
        with pytest.raises(AuthTimeout):
            await c.login("secret")
        assert c.state is ConnectionState.DISCONNECTED
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_first_connect_failure(client, transport_factory):
    transport_factory.refuse = True
    with pytest.raises(ConnectionFailed):
        await client.login("secret")
    assert client.state is ConnectionState.DISCONNECTED
    assert transport_factory.calls == 1


@pytest.mark.asyncio
async def test_unexpected_close_reconnects_and_rejoins(ready_client, transport_factory):
    await ready_client.join("room")
    transport_factory.fail_next = 1
    transport_factory.latest.drop()

    await settle(
        lambda: len(transport_factory.transports) == 2
        and ready_client.ready
        and ready_client.get_room("room").joined
    )
    assert transport_factory.calls == 3
    assert transport_factory.latest.commands("JOIN") == ["JOIN #room"]


@pytest.mark.asyncio
async def test_join_in_flight_is_resent_after_reconnect(ready_client, transport_factory):
    first = transport_factory.latest
    first.echo = False
    join = asyncio.create_task(ready_client.join("room"))
    await settle(lambda: first.commands("JOIN"))

    first.drop()

    assert await join is True
    second = transport_factory.latest
    assert second is not first
    assert second.commands("JOIN") == ["JOIN #room"]
    assert ready_client.get_room("room").joined
    assert len(ready_client.session.requests) == 0


@pytest.mark.asyncio
async def test_autojoin_cut_short_by_drop_rejoins_on_new_connection(make_client, transport_factory):
    transport_factory.transport_kwargs["echo"] = False
    c = make_client(channels=["a"])
    try:
        await c.login("secret")
        first = transport_factory.latest
        await settle(lambda: first.commands("JOIN"))

        transport_factory.transport_kwargs["echo"] = True
        first.drop()

        await settle(
            lambda: len(transport_factory.transports) == 2 and c.get_room("a").joined
        )
        assert transport_factory.latest.commands("JOIN") == ["JOIN #a"]
        assert len(c.session.requests) == 0
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_ping_in_flight_across_reconnect_returns_none(ready_client, transport_factory):
    first = transport_factory.latest
    first.pong = False
    ping = asyncio.create_task(ready_client.ping())
    await settle(lambda: first.commands("PING"))

    first.drop()

    assert await ping is None
    assert transport_factory.latest is not first
    assert transport_factory.latest.commands("PING") == []


@pytest.mark.asyncio
async def test_server_reconnect_command_triggers_reconnect(ready_client, transport_factory):
    transport_factory.latest.feed(":tmi.twitch.tv RECONNECT")
    await settle(lambda: len(transport_factory.transports) == 2 and ready_client.ready)


@pytest.mark.asyncio
async def test_reconnect_exhaustion_fails_pending_requests(make_client, transport_factory):
    c = make_client(retry_limit=3)
    events: list[DisconnectEvent] = []
    c.on(DisconnectEvent, events.append)
    try:
        await c.login("secret")
        transport_factory.latest.echo = False
        join = asyncio.create_task(c.join("room"))
        await settle(lambda: transport_factory.latest.commands("JOIN"))

        transport_factory.refuse = True
        transport_factory.latest.drop()

        with pytest.raises(RetriesExhausted):
            await join
        await settle(lambda: bool(events))
        assert c.state is ConnectionState.DISCONNECTED
        assert [e.reason for e in events] == [DisconnectEvent.RETRIES_EXHAUSTED]
        assert isinstance(events[0].error, RetriesExhausted)
        assert transport_factory.calls == 1 + 3
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_retry_limit_zero_gives_up_immediately(make_client, transport_factory):
    c = make_client(retry_limit=0)
    events: list[DisconnectEvent] = []
    c.on(DisconnectEvent, events.append)
    try:
        await c.login("secret")
        transport_factory.latest.drop()
        await settle(lambda: bool(events))
        assert events[0].reason == DisconnectEvent.RETRIES_EXHAUSTED
        assert transport_factory.calls == 1
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_disconnect_cancels_reconnect_backoff():
    factory = FakeTransportFactory()
    parked = asyncio.Event()

    async def park(_seconds: float) -> None:
        parked.set()
        await asyncio.Event().wait()

    c = Client(transport_factory=factory, sleep=park, username="tester", keepalive_interval=0)
    await c.login("secret")
    factory.latest.drop()
    await asyncio.wait_for(parked.wait(), 1)

    await c.disconnect()

    assert c.state is ConnectionState.DISCONNECTED
    assert factory.calls == 1
    await settle()
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_ping_round_trip_uses_session_clock(transport_factory, fake_clock):
    frozen_bucket = TokenBucket(clock=lambda: 0.0)
    c = Client(
        transport_factory=transport_factory,
        bucket=frozen_bucket,
        sleep=fake_clock.sleep,
        clock=fake_clock,
        username="tester",
        keepalive_interval=0,
    )
    try:
        await c.login("secret")
        assert await c.ping() == pytest.approx(0.0)
    finally:
        await c.disconnect()


@pytest.mark.asyncio
async def test_disconnect_cancels_running_handler_tasks(ready_client, transport_factory):
    await ready_client.join("room")
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def slow_handler(event: MessageEvent) -> None:
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    ready_client.on(MessageEvent, slow_handler)
    transport_factory.latest.feed(PRIVMSG_HELLO)
    await asyncio.wait_for(started.wait(), 1)

    await ready_client.disconnect()

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_server_ping_is_answered(ready_client, transport_factory):
    transport_factory.latest.feed("PING :tmi.twitch.tv")
    await settle(lambda: transport_factory.latest.commands("PONG"))
    assert transport_factory.latest.commands("PONG") == ["PONG tmi.twitch.tv"]


@pytest.mark.asyncio
async def test_malformed_line_does_not_end_session(ready_client, transport_factory):
    await ready_client.join("room")
    messages: list[MessageEvent] = []
    ready_client.on(MessageEvent, messages.append)
    transport_factory.latest.feed("@tags-without-command")
    transport_factory.latest.feed(PRIVMSG_HELLO)
    await settle(lambda: messages)
    assert ready_client.ready
    assert messages[0].content == "hello"


@pytest.mark.asyncio
async def test_message_reply_is_threaded(ready_client, transport_factory):
    await ready_client.join("room")
    messages: list[MessageEvent] = []
    ready_client.on(MessageEvent, messages.append)
    transport_factory.latest.feed(PRIVMSG_HELLO)
    await settle(lambda: messages)

    meta = await messages[0].reply("hi there")

    assert meta.room == "#room" and meta.reply_to == messages[0].id
    assert (
        f"@reply-parent-msg-id={messages[0].id} PRIVMSG #room :hi there"
        in transport_factory.latest.sent
    )


@pytest.mark.asyncio
async def test_send_and_me_action(ready_client, transport_factory):
    meta = await ready_client.send("room", "hello world")
    assert meta.content == "hello world" and meta.room == "#room"
    await ready_client.say("#room", "/me dances")
    sent = transport_factory.latest.commands("PRIVMSG")
    assert sent == ["PRIVMSG #room :hello world", "PRIVMSG #room :\x01ACTION dances\x01"]


@pytest.mark.asyncio
async def test_send_raw(ready_client, transport_factory):
    await ready_client.send_raw("PRIVMSG #room :raw line")
    assert "PRIVMSG #room :raw line" in transport_factory.latest.sent
    with pytest.raises(InvalidParameter):
        await ready_client.send_raw("PRIVMSG #room :a\r\nQUIT")


@pytest.mark.asyncio
async def test_uptime_follows_clock(ready_client, fake_clock):
    assert ready_client.uptime() == 0.0
    fake_clock.advance(5)
    assert ready_client.uptime() == pytest.approx(5)
    await ready_client.disconnect()
    assert ready_client.uptime() == 0.0


@pytest.mark.asyncio
async def test_async_context_manager_disconnects(make_client):
    async with make_client() as c:
        await c.login("secret")
        assert c.ready
    assert c.state is ConnectionState.DISCONNECTED
