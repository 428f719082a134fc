"""
Usage ledger — durable metering records for billing.

Every inbound request produces exactly one UsageRecord, success or failure.
The write is best-effort-durable: it happens after the response has been
produced, and a failure to write is logged, never surfaced to the caller.

Billed units:
  • /health     → 0
  • /calculate  → 1
  • /redeem     → 1
  • /attribute  → len(chain)  (billed per participant)
  • any non-2xx → 0
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.models.usage import UsageRecord

logger = logging.getLogger(__name__)

UNITS_HEALTH = 0
UNITS_SINGLE = 1


@dataclass(slots=True)
class Meter:
    """
    Per-request metering state shared between the middleware, the auth
    dependencies and the route handlers (via request.state.meter).
    """

    api_key_id: uuid.UUID | None = None
    developer_id: uuid.UUID | None = None
    billed_units: int = 0
    headers: dict[str, str] = field(default_factory=dict)

    def billable_units(self, status_code: int) -> int:
        return self.billed_units if 200 <= status_code < 300 else 0


async def record_usage(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    api_key_id: uuid.UUID | None,
    developer_id: uuid.UUID | None,
    endpoint: str,
    method: str,
    status_code: int,
    latency_ms: int,
    billed_units: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """
    Persist one usage record in its own session / transaction.

    Never raises: returns False and logs instead, so the
    primary request is unaffected.
    """
    record = UsageRecord(
        api_key_id=api_key_id,
        developer_id=developer_id,
        endpoint=endpoint[:255],
        method=method,
        status_code=status_code,
        latency_ms=max(0, latency_ms),
        billed_units=billed_units,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    )
    try:
        async with session_factory() as session:
            session.add(record)
            await session.commit()
    except Exception:
        logger.exception(
            "Failed to write usage record (key=%s endpoint=%s status=%d)",
            api_key_id, endpoint, status_code,
        )
        return False
    return True


# ── Monthly summary ─────────────────────────────────────────
def _month_start(now: datetime.datetime) -> datetime.datetime:
    """Floor a timestamp to 00:00 UTC on the first of its month."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def get_monthly_usage(
    session: AsyncSession,
    developer_id: uuid.UUID,
    now: datetime.datetime | None = None,
) -> list[tuple[str, int, int]]:
    """
    Billed units and request count per endpoint for the current month.

    SQL: SELECT endpoint, SUM(billed_units), COUNT(*) FROM usage_records
         WHERE developer_id = :dev AND timestamp >= :month_start
         GROUP BY endpoint ORDER BY endpoint
    """
    since = _month_start(now or utcnow())
    stmt = (
        select(
            UsageRecord.endpoint,
            func.coalesce(func.sum(UsageRecord.billed_units), 0).label("billed_units"),
            func.count().label("request_count"),
        )
        .where(
            UsageRecord.developer_id == developer_id,
            UsageRecord.timestamp >= since,
        )
        .group_by(UsageRecord.endpoint)
        .order_by(UsageRecord.endpoint.asc())
    )
    rows = (await session.execute(stmt)).all()
    return [(row.endpoint, int(row.billed_units), int(row.request_count)) for row in rows]
