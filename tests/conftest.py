"""pytest configuration and fixtures.

The relay runs in-process against fakeredis, so the real redis client code
paths are exercised without a server.
"""

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from app import app
from backend import SignalBackend, get_signal_backend
from rendezvous.relay_client import RelayClient


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def backend(fake_redis):
    return SignalBackend(redis_client=fake_redis, ttl=0)


@pytest.fixture
def use_backend():
    """Point the relay routes at a given backend for the duration of a test."""

    def install(backend):
        app.dependency_overrides[get_signal_backend] = lambda: backend

    yield install
    app.dependency_overrides.clear()


@pytest.fixture
def client(backend, use_backend):
    use_backend(backend)
    return TestClient(app)


@pytest.fixture
async def relay(backend, use_backend):
    use_backend(backend)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay") as http:
        yield RelayClient("http://relay", client=http)
