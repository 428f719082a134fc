"""
Scan ledger — append-only record of accepted redemptions.

One row per accepted redemption. Rows are never updated or deleted;
point balances must always agree with the sum of points_awarded here.
"""

import uuid
import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, TIMESTAMP, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.core.database import Base


class ScanEvent(Base):
    """One accepted redemption of a code by a caller."""

    __tablename__ = "scan_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("codes.id", ondelete="RESTRICT"),
        nullable=False,
    )
    caller_id: Mapped[str] = mapped_column(String(255), nullable=False)
    issuer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_applied: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    occurred_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_scan_events_code_id", "code_id"),
        Index("ix_scan_events_caller_issuer", "caller_id", "issuer_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScanEvent id={self.id!s:.8} code={self.code_id!s:.8} "
            f"caller={self.caller_id} points={self.points_awarded}>"
        )
