"""
Redemption router — the single entry point for code scans.

POST /redeem
  1. Authenticates via API key (scope "redeem") and counts the request
     against the key's rate window.
  2. Validates the payload (Pydantic).
  3. Runs the redemption transaction (services/redemption.py).
  4. Bills 1 unit on success.
  5. Schedules loyalty notifications after the response is sent.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_ledger.auth.rate_limit import DeveloperContext, require_scope
from loyalty_ledger.core.database import get_db_session
from loyalty_ledger.models.api_key import SCOPE_REDEEM
from loyalty_ledger.schemas.redeem import RedeemRequest, RedeemResponse
from loyalty_ledger.services.notifications import (
    NotificationDispatcher,
    build_events,
    dispatch_events,
    get_dispatcher,
)
from loyalty_ledger.services.redemption import redeem
from loyalty_ledger.services.usage_ledger import UNITS_SINGLE

router = APIRouter(tags=["Redemption"])

# Type aliases for cleaner signatures
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Guard = Annotated[DeveloperContext, Depends(require_scope(SCOPE_REDEEM))]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


@router.post(
    "/redeem",
    response_model=RedeemResponse,
    summary="Redeem a scanned code",
    description=(
        "Validates the code, records the scan and credits the caller's "
        "balance with the issuer in a single transaction. Not idempotent: "
        "a resubmitted request is a second redemption."
    ),
)
async def redeem_code(
    payload: RedeemRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    session: DbSession,
    auth: Guard,
    dispatcher: Dispatcher,
) -> RedeemResponse:
    result = await redeem(session, payload.code_id, payload.caller_id)

    request.state.meter.billed_units = UNITS_SINGLE
    background_tasks.add_task(dispatch_events, dispatcher, build_events(result))

    return RedeemResponse(
        points_earned=result.points_earned,
        discount_applied=result.discount_applied,
    )
