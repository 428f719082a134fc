"""
Database-backed rate limiter service.

Enforces a per-API-key request ceiling over a fixed one-minute window using
a single row per key in the rate_windows table.

Design decisions:
  • Check AND increment in ONE statement — INSERT … ON CONFLICT DO UPDATE
    … WHERE (window is stale OR count < limit) RETURNING. When the WHERE
    fails no row comes back and the request is rejected; the counter is
    untouched, so a 429 never inflates the count.
  • Stale windows are replaced in place (count restarts at 1), never
    accumulated.
  • Counters are committed immediately: they must survive even when the
    primary operation later fails.
  • No process-local state — every replica coordinates through the store.
"""

from __future__ import annotations

import datetime
import logging
import math
import uuid
from dataclasses import dataclass

from sqlalchemy import case, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_ledger.core.clock import as_utc, utcnow
from loyalty_ledger.core.config import settings
from loyalty_ledger.core.database import dialect_insert
from loyalty_ledger.core.errors import RateLimitedError
from loyalty_ledger.models.rate_window import RateWindow

logger = logging.getLogger(__name__)


def _window_length() -> datetime.timedelta:
    return datetime.timedelta(seconds=settings.RATE_LIMIT_WINDOW_SECONDS)


def _seconds_until_reset(
    window_start: datetime.datetime,
    now: datetime.datetime,
) -> int:
    """Whole seconds until the window rolls over (at least 1)."""
    remaining = (as_utc(window_start) + _window_length() - now).total_seconds()
    return max(1, math.ceil(remaining))


@dataclass(frozen=True, slots=True)
class RateWindowState:
    """Counter state after an accepted request."""

    limit: int
    count: int
    resets_in: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


async def check_and_increment_request(
    session: AsyncSession,
    api_key_id: uuid.UUID,
    limit: int,
    now: datetime.datetime | None = None,
) -> RateWindowState:
    """
    Atomically count one request against the key's current window.

    Raises RateLimitedError (with seconds until reset) if the request
    would exceed `limit`.
    """
    now = now or utcnow()

    if limit <= 0:
        raise RateLimitedError(retry_after=settings.RATE_LIMIT_WINDOW_SECONDS, limit=limit)

    is_stale = RateWindow.window_start <= now - _window_length()

    insert = dialect_insert(session, RateWindow).values(
        api_key_id=api_key_id,
        window_start=now,
        request_count=1,
    )
    stmt = insert.on_conflict_do_update(
        index_elements=["api_key_id"],
        set_={
            "window_start": case(
                (is_stale, insert.excluded.window_start),
                else_=RateWindow.window_start,
            ),
            "request_count": case(
                (is_stale, 1),
                else_=RateWindow.request_count + 1,
            ),
        },
        where=or_(is_stale, RateWindow.request_count < limit),
    ).returning(RateWindow.request_count, RateWindow.window_start)

    row = (await session.execute(stmt)).one_or_none()

    if row is None:
        await session.rollback()
        retry_after = await _retry_after(session, api_key_id, now)
        logger.info("Rate limit hit for key %s (limit=%d/min)", api_key_id, limit)
        raise RateLimitedError(retry_after=retry_after, limit=limit)

    await session.commit()  # persist the counter independently of the request outcome

    return RateWindowState(
        limit=limit,
        count=row.request_count,
        resets_in=_seconds_until_reset(row.window_start, now),
    )


async def _retry_after(
    session: AsyncSession,
    api_key_id: uuid.UUID,
    now: datetime.datetime,
) -> int:
    """Read-only lookup of the blocking window's reset time."""
    stmt = select(RateWindow.window_start).where(RateWindow.api_key_id == api_key_id)
    window_start = (await session.execute(stmt)).scalar_one_or_none()
    if window_start is None:
        return settings.RATE_LIMIT_WINDOW_SECONDS
    return _seconds_until_reset(window_start, now)


async def prune_stale_windows(
    session: AsyncSession,
    now: datetime.datetime | None = None,
) -> int:
    """
    Delete windows that have fully elapsed.

    Safe to run at any time: a concurrently recreated window is newer than
    the cutoff and is left alone. Returns the number of rows removed.
    """
    now = now or utcnow()
    stmt = delete(RateWindow).where(RateWindow.window_start <= now - _window_length())
    result = await session.execute(stmt)
    await session.commit()
    logger.info("Pruned %d stale rate windows", result.rowcount)
    return result.rowcount
