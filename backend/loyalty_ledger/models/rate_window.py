"""
Rate window model for per-API-key rate limiting.

One row per API key: the start of its current fixed window and the number
of requests accepted inside it. A window older than the window length is
replaced in place (count restarts at 1), never accumulated.

Atomic check-and-increment via INSERT … ON CONFLICT DO UPDATE … WHERE
ensures correctness under concurrent requests without external locks.
"""

import uuid
import datetime

from sqlalchemy import ForeignKey, Integer, TIMESTAMP, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.database import Base


class RateWindow(Base):
    """Per-key request counter for the current window."""

    __tablename__ = "rate_windows"

    api_key_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        primary_key=True,
    )
    window_start: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
    )
    request_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return (
            f"<RateWindow key={self.api_key_id!s:.8} "
            f"start={self.window_start:%H:%M:%S} count={self.request_count}>"
        )
