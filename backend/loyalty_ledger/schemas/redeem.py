"""
Pydantic v2 schemas for code redemption.

  • RedeemRequest  — what the CLIENT sends.
  • RedeemResponse — what was awarded. The balance itself is not echoed.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import ConfigDict, Field

from loyalty_ledger.schemas.base import CamelModel


# ── Request schema ──────────────────────────────────────────
class RedeemRequest(CamelModel):
    """
    Payload accepted by POST /redeem.

    callerId is the opaque id the identity provider verified upstream.
    An empty callerId means the caller is not authenticated (401).
    """

    model_config = ConfigDict(extra="forbid")

    code_id: uuid.UUID = Field(..., description="Code being scanned.")
    caller_id: str = Field(
        default="",
        max_length=255,
        description="Verified caller id from the identity provider.",
    )


# ── Response schema ─────────────────────────────────────────
class RedeemResponse(CamelModel):
    points_earned: int
    discount_applied: Decimal
