import itertools

import fakeredis
import httpx
import pytest

import backend
from backend import MemoryRoomStore, RedisRoomStore


@pytest.fixture
def memory_store():
    return MemoryRoomStore()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def redis_store(redis_client):
    return RedisRoomStore(redis_client, ttl=3600)


@pytest.fixture(params=["memory", "redis"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def down_store():
    server = fakeredis.FakeServer()
    server.connected = False
    return RedisRoomStore(fakeredis.FakeRedis(server=server, decode_responses=True), ttl=3600)


@pytest.fixture
def clock(monkeypatch):
    """Strictly increasing timestamps for the store, one second apart."""
    ticks = itertools.count()

    def fake_now():
        second = next(ticks)
        return f"2026-01-01T00:{second // 60:02d}:{second % 60:02d}+00:00"

    monkeypatch.setattr(backend, "utcnow_iso", fake_now)
    return fake_now


@pytest.fixture
def upstream_handler():
    """Swap `.handler` to change what the mocked upstream returns."""
    class Upstream:
        handler = staticmethod(lambda request: httpx.Response(404))

    return Upstream


@pytest.fixture
def client(memory_store, upstream_handler, monkeypatch):
    from fastapi.testclient import TestClient
    from app import app

    # Startup must never reach for a real Redis
    monkeypatch.setattr(backend, "REDIS_HOST", None)
    with TestClient(app) as test_client:
        app.state.room_store = memory_store
        app.state.http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: upstream_handler.handler(request)),
        )
        yield test_client
