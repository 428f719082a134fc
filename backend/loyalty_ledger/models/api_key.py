"""
API key model — authentication credential for a developer.

Security notes:
  • Raw API keys are NEVER stored. Only a SHA-256 hash is persisted.
  • The `prefix` column stores the first 12 characters (e.g., "sk_live_ab12")
    for identification in logs/UI without exposing the full key.
  • `status` allows suspension or revocation without deletion (audit trail).
  • `scopes` is a JSON list of endpoint families the key may call.
"""

import enum
import uuid
import datetime

from sqlalchemy import JSON, ForeignKey, Integer, String, Text, TIMESTAMP, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.core.clock import utcnow
from loyalty_ledger.core.database import Base
from loyalty_ledger.core.config import settings


class ApiKeyStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


# Scope names checked by the API key guard
SCOPE_REDEEM = "redeem"
SCOPE_CMAL = "cmal"
SCOPE_USAGE = "usage"


class APIKey(Base):
    """Hashed API key belonging to a developer."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    developer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("developers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True,
    )
    prefix: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
    )
    scopes: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ApiKeyStatus.ACTIVE.value,
        server_default=ApiKeyStatus.ACTIVE.value,
    )
    rate_limit_per_minute: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=settings.DEFAULT_RATE_LIMIT_PER_MINUTE,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ApiKeyStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<APIKey id={self.id!s:.8} prefix={self.prefix!r} "
            f"status={self.status}>"
        )
