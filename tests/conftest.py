import os

import pytest
import pytest_asyncio

# Keep environment-provided credentials out of the tests
os.environ.pop("CLIENT_TOKEN", None)

from sleept.client import Client  # noqa: E402
from tests.fixtures.clock import FakeClock  # noqa: E402
from tests.fixtures.fake_transport import FakeTransportFactory  # noqa: E402


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def make_client(transport_factory, fake_clock):
    """Build a Client wired to the fake transport and clock."""

    def _make(**options) -> Client:
        options.setdefault("username", "tester")
        return Client(
            transport_factory=transport_factory,
            sleep=fake_clock.sleep,
            clock=fake_clock,
            keepalive_interval=0,
            **options,
        )

    return _make


@pytest_asyncio.fixture
async def client(make_client):
    c = make_client()
    yield c
    await c.disconnect()


@pytest_asyncio.fixture
async def ready_client(client):
    await client.login("oauth:secret")
    yield client
