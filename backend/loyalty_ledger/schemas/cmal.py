"""
Pydantic v2 schemas for the attribution endpoints (scope "cmal").

Request amounts arrive as JSON numbers or strings and are parsed straight
into Decimal. Business rules (positive amount, non-empty chain) are checked
by services/attribution.py so the HTTP and in-process paths agree.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import ConfigDict, Field

from loyalty_ledger.schemas.base import CamelModel


# ── /calculate ──────────────────────────────────────────────
class CalculateRequest(CamelModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., examples=["100.00"], description="Transaction amount.")
    category: str | None = Field(
        default=None,
        max_length=100,
        examples=["restaurant"],
        description="Business category label; unknown labels score 1.0x.",
    )
    tier: str | None = Field(
        default=None,
        max_length=50,
        examples=["gold"],
        description="Customer tier label; unknown labels fall back to the lowest tier.",
    )


class AttributionOut(CamelModel):
    local_retention: Decimal
    community_benefit: Decimal
    economic_velocity: Decimal


class BreakdownOut(CamelModel):
    """Full scoring of one transaction."""

    amount: Decimal
    impact: Decimal
    circulation_score: int
    base_multiplier: Decimal
    tier: str
    tier_multiplier: Decimal
    category: str | None
    category_multiplier: Decimal
    effective_multiplier: Decimal
    attribution: AttributionOut
    table_version: str


# ── /attribute ──────────────────────────────────────────────
class ChainLinkIn(CamelModel):
    model_config = ConfigDict(extra="forbid")

    participant_id: str = Field(..., min_length=1, max_length=255)
    amount: Decimal
    category: str | None = Field(default=None, max_length=100)


class AttributeRequest(CamelModel):
    model_config = ConfigDict(extra="forbid")

    transaction_id: str = Field(..., max_length=255)
    chain: list[ChainLinkIn]


class ParticipantShareOut(CamelModel):
    participant_id: str
    amount: Decimal
    category_multiplier: Decimal
    impact: Decimal
    percentage: Decimal


class ChainAttributionOut(CamelModel):
    transaction_id: str
    total: Decimal
    velocity_score: int
    per_participant: list[ParticipantShareOut]
    table_version: str
