import pytest

from sleept.client import Client
from sleept.config import ClientOptions, normalize_channels
from sleept.errors import InvalidConfiguration


def test_defaults():
    options = ClientOptions()
    assert options.retry_limit == 5
    assert options.message_cache_lifetime == 0
    assert options.message_sweep_interval == 0
    assert options.channels == []


def test_channels_are_normalized_and_deduplicated():
    assert normalize_channels(["Foo", "#foo", " bar ", "", "#"]) == ["#foo", "#bar"]
    assert ClientOptions(channels=["Room"]).channels == ["#room"]


def test_username_is_lowercased():
    assert ClientOptions(username="  MyBot ").username == "mybot"


@pytest.mark.parametrize(
    "options",
    [
        {"message_cache_lifetime": "forever"},
        {"retry_limit": -1},
        {"channels": "not-a-list"},
        {"disabled_events": ["nope"]},
        {"request_timeout": 0},
        {"unknown_option": True},
    ],
)
def test_invalid_options_raise_invalid_configuration(options):
    with pytest.raises(InvalidConfiguration) as excinfo:
        ClientOptions.from_mapping(options)
    assert excinfo.value.data["errors"]


def test_client_construction_fails_fast_without_connecting():
    calls: list[str] = []

    async def factory(url: str):  # pragma: no cover - must not be reached
        calls.append(url)

    with pytest.raises(InvalidConfiguration):
        Client(transport_factory=factory, message_sweep_interval="soon")
    assert calls == []


def test_client_accepts_options_with_overrides():
    base = ClientOptions(username="bot", channels=["a"])
    client = Client(base, retry_limit=2)
    assert client.options.retry_limit == 2
    assert client.options.username == "bot"
    assert client.rooms.keys() == ["#a"]


def test_sweep_messages_sentinel_when_unbounded():
    client = Client(channels=["room"])
    assert client.sweep_messages() == -1
