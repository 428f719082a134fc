"""
Async database engine, session factory, and ORM base.

Rules enforced:
  • Every DB call goes through AsyncSession (no sync sessions).
  • Sessions are request-scoped via FastAPI's Depends(get_db_session).
  • The declarative Base is shared across all models so Alembic can
    auto-detect schema changes from a single metadata object.
  • Upserts go through dialect_insert() so ON CONFLICT works on both
    PostgreSQL (production) and SQLite (tests).
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from loyalty_ledger.core.config import settings

# ── Engine ──────────────────────────────────────────────────
# pool_pre_ping: drop stale connections before reuse
# echo: SQL logging — only in debug mode
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# ── Session factory ─────────────────────────────────────────
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # avoid lazy-load issues after commit
)


# ── ORM Base ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Shared declarative base for all SQLAlchemy models."""


# ── Dialect-aware INSERT … ON CONFLICT ──────────────────────
def dialect_insert(session: AsyncSession, model: type[Base]) -> Any:
    """
    Return an INSERT construct supporting on_conflict_do_update()
    for the dialect the session is bound to.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


# ── Dependency ──────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a scoped async session for one request.

    The session is committed by the caller (router/service);
    this generator only guarantees cleanup on exit.
    """
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
