"""
Code registry — issuable redemption codes.

A code is created by the issuer-management workflow and afterwards only
its scan_count changes (via the redemption coordinator). Administrative
deactivation flips `active` outside this engine.

Design notes:
  • scan_limit NULL means unlimited. When set, the CHECK constraint
    guarantees scan_count never passes it, even for a buggy writer.
  • discount_pct is NUMERIC(5,2) — a percentage, exact decimal.
  • issuer_id is the opaque business id supplied by the catalog service.
"""

import enum
import uuid
import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Integer,
    Numeric,
    String,
    TIMESTAMP,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.core.database import Base


class CodeType(str, enum.Enum):
    LOYALTY = "loyalty"
    DISCOUNT = "discount"
    CHECKIN = "checkin"


class Code(Base):
    """One redeemable code issued by a business."""

    __tablename__ = "codes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    issuer_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True,
    )
    code_type: Mapped[str] = mapped_column(
        String(20), nullable=False,
    )
    points_value: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    discount_pct: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0"),
    )
    scan_limit: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
    )
    scan_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "code_type IN ('loyalty', 'discount', 'checkin')",
            name="ck_codes_type_valid",
        ),
        CheckConstraint("points_value >= 0", name="ck_codes_points_non_neg"),
        CheckConstraint(
            "discount_pct >= 0 AND discount_pct <= 100",
            name="ck_codes_discount_range",
        ),
        CheckConstraint("scan_count >= 0", name="ck_codes_scan_count_non_neg"),
        CheckConstraint(
            "scan_limit IS NULL OR (scan_limit >= 0 AND scan_count <= scan_limit)",
            name="ck_codes_scan_count_within_limit",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Code id={self.id!s:.8} type={self.code_type} "
            f"scans={self.scan_count}/{self.scan_limit}>"
        )
