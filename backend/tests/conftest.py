import os

# Settings are read at import time; the engine never connects to this URL.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loyalty_ledger.core import database
from loyalty_ledger.core.database import Base
import loyalty_ledger.models.developer  # noqa: F401
from loyalty_ledger.main import app

from factories import create_api_key


@pytest_asyncio.fixture
async def session_factory(tmp_path, monkeypatch):
    """
    A file-backed SQLite store per test, so concurrent sessions really use
    separate connections. Installed as the application-wide factory.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    monkeypatch.setattr(database, "async_session_factory", factory)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def client(session_factory):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest_asyncio.fixture
async def api_key(session_factory):
    return await create_api_key(session_factory)


@pytest.fixture
def fixed_now():
    return datetime.datetime(2026, 10, 19, 12, 0, 0, tzinfo=datetime.timezone.utc)
