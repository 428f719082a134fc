"""
Economic attribution: single-transaction impact and chain attribution.

WHY THIS IS A SERVICE AND NOT INLINE:
  • Impact scores are billed output — they deserve their own testable module.
  • Both functions are pure: same (table, inputs) ⇒ same result, no I/O.
  • Decimal everywhere, quantized half-up to currency precision, so the
    numbers add up exactly on the client side.

The multiplier values themselves live in the versioned MultiplierTable
(see services/multipliers.py); nothing here hard-codes a rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from loyalty_ledger.core.errors import ValidationError
from loyalty_ledger.services.multipliers import MultiplierTable

CURRENCY_PRECISION = Decimal("0.01")
_ONE_HUNDRED = Decimal("100")
_ZERO = Decimal("0")
# Keeps every intermediate well inside the 28-digit decimal context.
MAX_AMOUNT = Decimal("1000000000000000")


def _check_amount(amount: Decimal, field: str) -> None:
    if not amount.is_finite() or amount > MAX_AMOUNT:
        raise ValidationError(f"{field} must be a finite number no greater than {MAX_AMOUNT}")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CURRENCY_PRECISION, rounding=ROUND_HALF_UP)


def _bounded_score(value: Decimal) -> int:
    """Round half-up to an integer and clamp to [0, 100]."""
    rounded = int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, rounded))


def _split_exact(total: Decimal, weights: dict[str, Decimal]) -> dict[str, Decimal]:
    """
    Split `total` by weight, rounding each part to currency precision.

    The rounding remainder goes to the heaviest part so that the parts
    always sum exactly to `total`.
    """
    parts = {name: _money(total * weight) for name, weight in weights.items()}
    remainder = total - sum(parts.values(), _ZERO)
    if remainder:
        heaviest = max(weights, key=lambda name: weights[name])
        parts[heaviest] += remainder
    return parts


# ── Single transaction ──────────────────────────────────────
@dataclass(frozen=True, slots=True)
class Attribution:
    local_retention: Decimal
    community_benefit: Decimal
    economic_velocity: Decimal


@dataclass(frozen=True, slots=True)
class Breakdown:
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
    attribution: Attribution
    table_version: str


def calculate_impact(
    table: MultiplierTable,
    amount: Decimal,
    category: str | None = None,
    tier: str | None = None,
) -> Breakdown:
    """
    Score the economic impact of a single transaction.

    Args:
        table:    Multiplier table version to apply.
        amount:   Transaction amount (> 0).
        category: Business category label; unknown/absent ⇒ 1.0×.
        tier:     Customer tier label; unknown/absent ⇒ lowest tier.

    Raises:
        ValidationError: If amount is not positive or exceeds MAX_AMOUNT.
    """
    _check_amount(amount, "amount")
    if amount <= 0:
        raise ValidationError("amount is required and must be positive")

    tier_label, tier_multiplier = table.resolve_tier(tier)
    category_label, category_multiplier = table.resolve_category(category)

    effective = table.base_multiplier * tier_multiplier * category_multiplier
    impact = _money(amount * effective)
    circulation_score = _bounded_score(effective / table.ceiling * _ONE_HUNDRED)

    buckets = _split_exact(impact, table.attribution_split.shares())

    return Breakdown(
        amount=amount,
        impact=impact,
        circulation_score=circulation_score,
        base_multiplier=table.base_multiplier,
        tier=tier_label,
        tier_multiplier=tier_multiplier,
        category=category_label,
        category_multiplier=category_multiplier,
        effective_multiplier=effective,
        attribution=Attribution(**buckets),
        table_version=table.version,
    )


# ── Attribution chain ───────────────────────────────────────
@dataclass(frozen=True, slots=True)
class ChainLink:
    """One participant in an attribution chain, as supplied by the caller."""

    participant_id: str
    amount: Decimal
    category: str | None = None


@dataclass(frozen=True, slots=True)
class ParticipantShare:
    participant_id: str
    amount: Decimal
    category_multiplier: Decimal
    impact: Decimal
    percentage: Decimal


@dataclass(frozen=True, slots=True)
class ChainAttribution:
    transaction_id: str
    total: Decimal
    velocity_score: int
    per_participant: list[ParticipantShare]
    table_version: str


def attribute_chain(
    table: MultiplierTable,
    transaction_id: str,
    chain: list[ChainLink],
) -> ChainAttribution:
    """
    Distribute the impact of one economic event across its participants.

    Percentages are computed from unrounded impacts, rounded to two
    decimals, and the remainder is credited to the largest participant,
    so they sum to exactly 100 whenever the total is positive. An all-zero
    chain reports 0% for everybody.

    Raises:
        ValidationError: Blank transaction id, empty chain, negative amount,
                         amount above MAX_AMOUNT.
    """
    if not transaction_id or not transaction_id.strip():
        raise ValidationError("transaction_id is required")
    if not chain:
        raise ValidationError("chain must contain at least one participant")
    for link in chain:
        _check_amount(link.amount, f"amount for participant '{link.participant_id}'")
        if link.amount < 0:
            raise ValidationError(
                f"amount for participant '{link.participant_id}' must not be negative"
            )

    factors = [table.resolve_category(link.category)[1] for link in chain]
    impacts = [
        link.amount * table.base_multiplier * factor
        for link, factor in zip(chain, factors)
    ]
    raw_total = sum(impacts, _ZERO)

    if raw_total == 0:
        percentages = [_ZERO for _ in chain]
    else:
        weights = {idx: impact / raw_total for idx, impact in enumerate(impacts)}
        split = _split_exact(_ONE_HUNDRED, weights)
        percentages = [split[idx] for idx in range(len(chain))]

    total = _money(raw_total)
    velocity_score = _bounded_score(
        len(chain) * table.velocity_length_weight + total / table.velocity_scale
    )

    shares = [
        ParticipantShare(
            participant_id=link.participant_id,
            amount=link.amount,
            category_multiplier=factor,
            impact=_money(impact),
            percentage=percentage,
        )
        for link, factor, impact, percentage in zip(chain, factors, impacts, percentages)
    ]

    return ChainAttribution(
        transaction_id=transaction_id,
        total=total,
        velocity_score=velocity_score,
        per_participant=shares,
        table_version=table.version,
    )
