"""Shared fixtures: in-memory services, the ASGI app and an HTTP client."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chatr.configs.settings import Settings
from chatr.core.directory import AgentDirectory
from chatr.core.message_log import MessageLog
from chatr.core.services import ChatServices
from chatr.server.app import create_app
from chatr.store import InMemoryChatStore


class FakeClock:
    """Monotonic seconds that only move when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """UTC datetimes that only move when told to."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def directory(store, wall_clock) -> AgentDirectory:
    return AgentDirectory(store, presence_timeout=120.0, clock=wall_clock)


@pytest.fixture
def log(store) -> MessageLog:
    return MessageLog(store, max_length=2000, default_limit=50, max_limit=100)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def services(settings) -> ChatServices:
    return ChatServices.build(settings, store=InMemoryChatStore())


@pytest.fixture
def app(settings, services):
    return create_app(settings, services)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def bearer(credential: str) -> dict:
    return {"Authorization": f"Bearer {credential}"}


@pytest.fixture
async def author(directory):
    agent, _ = await directory.register("Author")
    return agent
