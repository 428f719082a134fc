"""
Redemption coordinator — scanned code in, exactly-once balance credit out.

ATOMICITY:
  The whole sequence runs in ONE transaction whose first statement is a
  conditional compare-and-increment on the code row:

      UPDATE codes SET scan_count = scan_count + 1
       WHERE id = :id AND active
         AND (expires_at IS NULL OR expires_at > :now)
         AND (scan_limit IS NULL OR scan_count < scan_limit)
      RETURNING issuer_id, code_type, points_value, discount_pct

  The row lock taken by that UPDATE serializes concurrent redemptions of
  the same code; the WHERE is re-evaluated against the committed row, so
  with scan_limit = N exactly N redemptions can ever succeed. The ScanEvent
  append and the INSERT … ON CONFLICT balance upsert commit together with
  it, or not at all.

  When the UPDATE matches nothing, the transaction is rolled back and the
  code is re-read only to report WHY (NotFound / Inactive / Expired /
  LimitExceeded). Nothing is written on any failure path.

NOT IDEMPOTENT:
  There is no client idempotency key. Resubmitting a request that already
  committed records a second scan and credits the balance again. No retry
  is attempted here.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_ledger.core.clock import as_utc, utcnow
from loyalty_ledger.core.database import dialect_insert
from loyalty_ledger.core.errors import (
    ExpiredError,
    InactiveError,
    InternalError,
    LimitExceededError,
    NotFoundError,
    UnauthorizedError,
)
from loyalty_ledger.models.code import Code, CodeType
from loyalty_ledger.models.point_balance import PointBalance
from loyalty_ledger.models.scan_event import ScanEvent

logger = logging.getLogger(__name__)

_NO_DISCOUNT = Decimal("0")


@dataclass(frozen=True, slots=True)
class RedemptionResult:
    scan_event_id: uuid.UUID
    code_id: uuid.UUID
    caller_id: str
    issuer_id: str
    points_earned: int
    discount_applied: Decimal
    balance: int


def _award(code_type: str, points_value: int, discount_pct: Decimal | None) -> tuple[int, Decimal]:
    """Loyalty codes earn points, discount codes grant a discount, check-ins neither."""
    if code_type == CodeType.LOYALTY.value:
        return points_value or 0, _NO_DISCOUNT
    if code_type == CodeType.DISCOUNT.value:
        return 0, Decimal(discount_pct or 0)
    return 0, _NO_DISCOUNT


async def _raise_for_code(
    session: AsyncSession,
    code_id: uuid.UUID,
    now: datetime.datetime,
) -> None:
    """Raise the first failing precondition for `code_id`, in contract order."""
    stmt = select(Code).where(Code.id == code_id).execution_options(populate_existing=True)
    code = (await session.execute(stmt)).scalar_one_or_none()

    if code is None:
        raise NotFoundError("Code not found.")
    if not code.active:
        raise InactiveError()
    if code.expires_at is not None and as_utc(code.expires_at) <= now:
        raise ExpiredError()
    if code.scan_limit is not None and code.scan_count >= code.scan_limit:
        raise LimitExceededError()


async def redeem(
    session: AsyncSession,
    code_id: uuid.UUID,
    caller_id: str | None,
    now: datetime.datetime | None = None,
) -> RedemptionResult:
    """
    Redeem(codeID, callerID) -> {pointsEarned, discountApplied}.

    Args:
        session:   Async DB session; this function owns the transaction.
        code_id:   Code being scanned.
        caller_id: Opaque, already-verified caller id from the identity
                   provider. Blank means the caller is not authenticated.
        now:       Evaluation time (defaults to current UTC time).

    Raises:
        NotFoundError, InactiveError, ExpiredError, LimitExceededError,
        UnauthorizedError — precondition failures, no side effects.
        InternalError — store failure, transaction rolled back.
    """
    now = now or utcnow()

    if not caller_id or not caller_id.strip():
        await _raise_for_code(session, code_id, now)
        raise UnauthorizedError("Caller is not authenticated.")

    # ── 1. Compare-and-increment (takes the code row lock) ──
    claim = (
        update(Code)
        .where(
            Code.id == code_id,
            Code.active.is_(True),
            or_(Code.expires_at.is_(None), Code.expires_at > now),
            or_(Code.scan_limit.is_(None), Code.scan_count < Code.scan_limit),
        )
        .values(scan_count=Code.scan_count + 1)
        .returning(Code.issuer_id, Code.code_type, Code.points_value, Code.discount_pct)
        .execution_options(synchronize_session=False)
    )

    try:
        claimed = (await session.execute(claim)).one_or_none()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to claim code %s", code_id)
        raise InternalError()

    if claimed is None:
        await session.rollback()
        await _raise_for_code(session, code_id, now)
        # Every precondition holds on re-read: the row changed under us.
        logger.error("Code %s rejected the claim but passes re-validation", code_id)
        raise InternalError()

    points, discount = _award(claimed.code_type, claimed.points_value, claimed.discount_pct)

    # ── 2. Ledger append + balance upsert, same transaction ─
    try:
        event = ScanEvent(
            code_id=code_id,
            caller_id=caller_id,
            issuer_id=claimed.issuer_id,
            points_awarded=points,
            discount_applied=discount,
            occurred_at=now,
        )
        session.add(event)
        await session.flush()

        insert = dialect_insert(session, PointBalance).values(
            caller_id=caller_id,
            issuer_id=claimed.issuer_id,
            points=points,
            updated_at=now,
        )
        upsert = insert.on_conflict_do_update(
            index_elements=["caller_id", "issuer_id"],
            set_={
                "points": PointBalance.points + insert.excluded.points,
                "updated_at": insert.excluded.updated_at,
            },
        ).returning(PointBalance.points)
        balance = (await session.execute(upsert)).scalar_one()

        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "Redemption of code %s by %s rolled back", code_id, caller_id,
        )
        raise InternalError()

    logger.info(
        "Code %s redeemed by %s: +%d points, %s%% discount (balance %d)",
        code_id, caller_id, points, discount, balance,
    )

    return RedemptionResult(
        scan_event_id=event.id,
        code_id=code_id,
        caller_id=caller_id,
        issuer_id=claimed.issuer_id,
        points_earned=points,
        discount_applied=discount,
        balance=balance,
    )
