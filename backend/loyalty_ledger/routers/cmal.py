"""
Attribution router — economic impact scoring (scope "cmal").

Endpoints:
  POST /calculate  — impact breakdown of one transaction, billed 1 unit
  POST /attribute  — impact split across a participant chain,
                     billed 1 unit per participant

Both are pure computations over the active multiplier table; nothing is
persisted apart from the usage record written by the metering middleware.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from loyalty_ledger.auth.rate_limit import DeveloperContext, require_scope
from loyalty_ledger.models.api_key import SCOPE_CMAL
from loyalty_ledger.schemas.cmal import (
    AttributeRequest,
    BreakdownOut,
    CalculateRequest,
    ChainAttributionOut,
)
from loyalty_ledger.services.attribution import ChainLink, attribute_chain, calculate_impact
from loyalty_ledger.services.multipliers import MultiplierTable, get_multiplier_table
from loyalty_ledger.services.usage_ledger import UNITS_SINGLE

router = APIRouter(tags=["Attribution"])

Guard = Annotated[DeveloperContext, Depends(require_scope(SCOPE_CMAL))]
Table = Annotated[MultiplierTable, Depends(get_multiplier_table)]


# ── 1. Single transaction ───────────────────────────────────
@router.post(
    "/calculate",
    response_model=BreakdownOut,
    summary="Score the economic impact of one transaction",
)
async def calculate(
    payload: CalculateRequest,
    request: Request,
    auth: Guard,
    table: Table,
) -> BreakdownOut:
    breakdown = calculate_impact(
        table,
        amount=payload.amount,
        category=payload.category,
        tier=payload.tier,
    )
    request.state.meter.billed_units = UNITS_SINGLE
    return BreakdownOut.model_validate(breakdown)


# ── 2. Attribution chain ────────────────────────────────────
@router.post(
    "/attribute",
    response_model=ChainAttributionOut,
    summary="Attribute one economic event across its participants",
    description=(
        "Percentages sum to exactly 100 whenever the total impact is "
        "positive. Billed one unit per chain participant."
    ),
)
async def attribute(
    payload: AttributeRequest,
    request: Request,
    auth: Guard,
    table: Table,
) -> ChainAttributionOut:
    chain = [
        ChainLink(
            participant_id=link.participant_id,
            amount=link.amount,
            category=link.category,
        )
        for link in payload.chain
    ]
    result = attribute_chain(table, payload.transaction_id, chain)
    request.state.meter.billed_units = len(chain)
    return ChainAttributionOut.model_validate(result)
