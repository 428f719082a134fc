"""
Developer model — one API customer account.

A developer owns API keys; usage records are attributed to it for billing.
"""

import uuid
import datetime

from sqlalchemy import TIMESTAMP, Text, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.core.database import Base


class Developer(Base):
    """One developer account — the billing boundary for metered calls."""

    __tablename__ = "developers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        Text, nullable=False,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Developer id={self.id!s:.8} name={self.name!r}>"
