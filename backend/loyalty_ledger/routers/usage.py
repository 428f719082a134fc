"""
Usage router — what the calling developer is billed for this month.

GET /usage
  SQL aggregation over usage_records (GROUP BY endpoint), scoped to the
  developer that owns the presented key. Not billed.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_ledger.auth.rate_limit import DeveloperContext, require_scope
from loyalty_ledger.core.database import get_db_session
from loyalty_ledger.models.api_key import SCOPE_USAGE
from loyalty_ledger.schemas.usage import UsageSummaryOut
from loyalty_ledger.services.usage_ledger import get_monthly_usage

router = APIRouter(tags=["Usage"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Guard = Annotated[DeveloperContext, Depends(require_scope(SCOPE_USAGE))]


@router.get(
    "/usage",
    response_model=list[UsageSummaryOut],
    summary="Billed units per endpoint for the current month",
)
async def get_usage(session: DbSession, auth: Guard) -> list[UsageSummaryOut]:
    rows = await get_monthly_usage(session, auth.developer_id)
    return [
        UsageSummaryOut(endpoint=endpoint, billed_units=units, request_count=count)
        for endpoint, units, count in rows
    ]
