"""
Point balance store — running point total per (caller, issuer).

Composite PK (caller_id, issuer_id) makes the balance upsert a single
INSERT … ON CONFLICT DO UPDATE. The CHECK constraint rejects any delta
that would take a balance below zero.
"""

import datetime

from sqlalchemy import CheckConstraint, Integer, String, TIMESTAMP
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.core.database import Base


class PointBalance(Base):
    """Points a caller holds with one issuing business."""

    __tablename__ = "point_balances"

    caller_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    issuer_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_point_balances_non_neg"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointBalance caller={self.caller_id} issuer={self.issuer_id} "
            f"points={self.points}>"
        )
