"""
Pytest configuration and fixtures for relay tests.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from sqlalchemy.orm import sessionmaker

from collab_relay.components.connection.handle import ConnectionHandle
from collab_relay.components.sessions.registry import SessionRegistry
from collab_relay.config.settings import Settings
from collab_relay.infrastructure.db import build_engine, build_session_factory
from collab_relay.persistence.models import Base
from collab_relay.relay import SessionRelay


class FakeTransport:
    """
    In-memory stand-in for a WebSocket.

    Records every sent frame (parsed back from JSON) and the close call.
    Set `fail = True` to make the next send raise.
    """

    def __init__(self):
        self.sent: list[dict] = []
        self.closed: tuple[int, str | None] | None = None
        self.fail = False

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, event_type: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == event_type]

    def last(self, event_type: str) -> dict:
        matches = self.of_type(event_type)
        assert matches, f"no {event_type!r} event in {self.types()}"
        return matches[-1]


@pytest.fixture
def relay_settings():
    """Settings with a liveness interval long enough to never fire on its own."""
    return Settings(
        environment="test",
        debug=False,
        liveness_interval=3600.0,
        ws_receive_timeout=5.0,
        ws_max_message_size=1024,
        history_database_url="",
    )


@pytest_asyncio.fixture
async def relay(relay_settings):
    """A relay that is shut down (closing every handle) after the test."""
    relay = SessionRelay(settings=relay_settings)
    yield relay
    await relay.shutdown()


@pytest.fixture
def connect(relay):
    """
    Factory for connected handles.

    Usage:
        handle, transport = await connect()
    """
    async def _connect():
        transport = FakeTransport()
        handle = relay.new_handle(transport)
        relay.connect(handle)
        return handle, transport

    return _connect


@pytest.fixture
def settle(relay):
    """Wait until every tracked handle has written its queued events."""
    async def _settle(*extra: ConnectionHandle):
        handles = [*relay.connections(), *extra]
        await asyncio.gather(*(h.flush(timeout=1.0) for h in handles))

    return _settle


@pytest.fixture
def registry():
    """A registry used without a relay (sync tests call methods directly)."""
    return SessionRegistry()


@pytest.fixture
def make_handle():
    """Factory for unstarted handles over fake transports."""
    def _make(queue_size: int = 16) -> ConnectionHandle:
        return ConnectionHandle(FakeTransport(), queue_size=queue_size)

    return _make


@pytest.fixture(scope="function")
def history_db() -> sessionmaker:
    """
    Session factory over a fresh in-memory SQLite history database.
    """
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    try:
        yield build_session_factory(engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
