"""
SQLAlchemy model for the `usage_records` table.

Each row represents one inbound API request — treated as a billing record,
not a throwaway log entry. Written exactly once per request, whatever the
outcome.

Design notes:
  • api_key_id / developer_id are nullable: requests rejected before a key
    could be identified (missing or unknown key) are still metered.
  • billed_units is the quantity charged for the call (0 for health checks
    and failed requests).
  • Indexes on timestamp and developer_id support the monthly usage query.
"""

import uuid
import datetime

from sqlalchemy import (
    CheckConstraint,
    Index,
    Integer,
    String,
    TIMESTAMP,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.core.database import Base


class UsageRecord(Base):
    """One metered API request."""

    __tablename__ = "usage_records"

    # ── Primary key ─────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Timestamp ───────────────────────────────────────────
    timestamp: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ── Caller ──────────────────────────────────────────────
    api_key_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    developer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # ── Request / response ──────────────────────────────────
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    billed_units: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Client metadata ─────────────────────────────────────
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # ── Table-level constraints ─────────────────────────────
    __table_args__ = (
        CheckConstraint("latency_ms >= 0", name="ck_usage_latency_ms_non_neg"),
        CheckConstraint("billed_units >= 0", name="ck_usage_billed_units_non_neg"),
        Index("ix_usage_records_timestamp", "timestamp"),
        Index("ix_usage_records_developer_id", "developer_id"),
        Index("ix_usage_records_api_key_id", "api_key_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecord {self.method} {self.endpoint} "
            f"status={self.status_code} units={self.billed_units}>"
        )
