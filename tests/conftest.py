from __future__ import annotations

import base64
import datetime as dt
import json
import uuid
from typing import AsyncGenerator, Callable, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from jarvis.db import Base
# Register every table on Base.metadata
from jarvis.models import calendar, integration, orders, sync_task, workspace  # noqa: F401
from jarvis.services.integration_service import IntegrationService


class FakeClock:
    """Deterministic naive-UTC clock that tests move forward by hand."""

    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> dt.datetime:
        self.now = self.now + dt.timedelta(**kwargs)
        return self.now


class CountingRefresher:
    """Stands in for a provider's OAuth refresh endpoint."""

    def __init__(self, access_token: str = "refreshed-token", expires_in: int = 3600, error=None):
        self.calls = 0
        self.access_token = access_token
        self.expires_in = expires_in
        self.error = error

    async def refresh(self, refresh_token, http_client=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"access_token": self.access_token, "expires_in": self.expires_in}


def make_jwt(sub: str) -> str:
    """Unsigned JWT carrying ``sub``; the API only decodes the payload."""

    def encode(data: dict) -> str:
        raw = base64.urlsafe_b64encode(json.dumps(data).encode()).decode()
        return raw.rstrip("=")

    return f"{encode({'alg': 'none', 'typ': 'JWT'})}.{encode({'sub': sub})}.signature"


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jarvis_test.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2026, 3, 2, 9, 0, 0))


@pytest_asyncio.fixture
async def mock_http() -> AsyncGenerator[Callable[[Callable], httpx.AsyncClient], None]:
    """Factory for AsyncClients whose requests go to an in-process handler."""
    clients: List[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def connect(db_session: AsyncSession, clock: FakeClock):
    """Store credentials for (user, provider) as a completed OAuth connect would."""

    async def _connect(user_id: str, provider: str, **kwargs):
        kwargs.setdefault("access_token", f"{provider}-token")
        return await IntegrationService(db_session, clock=clock).connect(user_id, provider, **kwargs)

    return _connect
