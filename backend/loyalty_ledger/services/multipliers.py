"""
Versioned multiplier tables for the attribution calculator.

The tables are DATA, not code: they live in a JSON document (bundled
default: loyalty_ledger/data/multipliers.json, override with the
MULTIPLIER_TABLE_PATH setting) and are validated into a frozen
MultiplierTable on first use. Changing a multiplier is a config change,
not a redeploy of the calculation logic.

All values are Decimal since they feed money arithmetic.
"""

from __future__ import annotations

import functools
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from loyalty_ledger.core.config import settings

_BUNDLED_TABLE = Path(__file__).resolve().parent.parent / "data" / "multipliers.json"

_NEUTRAL = Decimal("1")


class AttributionSplit(BaseModel):
    """Share of impact credited to each named bucket; shares sum to 1."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    local_retention: Decimal = Field(..., ge=0)
    community_benefit: Decimal = Field(..., ge=0)
    economic_velocity: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def _sums_to_one(self) -> AttributionSplit:
        total = self.local_retention + self.community_benefit + self.economic_velocity
        if total != _NEUTRAL:
            raise ValueError(f"attribution_split must sum to 1, got {total}")
        return self

    def shares(self) -> dict[str, Decimal]:
        return self.model_dump()


class MultiplierTable(BaseModel):
    """One immutable version of the tier / category lookup data."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = Field(..., min_length=1)
    base_multiplier: Decimal = Field(..., gt=0)
    tiers: dict[str, Decimal] = Field(..., min_length=1)
    categories: dict[str, Decimal] = Field(default_factory=dict)
    attribution_split: AttributionSplit
    velocity_length_weight: Decimal = Field(..., ge=0)
    velocity_scale: Decimal = Field(..., gt=0)

    @field_validator("tiers", "categories")
    @classmethod
    def _lowercase_labels(cls, value: dict[str, Decimal]) -> dict[str, Decimal]:
        """Labels are matched case-insensitively; store them lowercased."""
        for label, factor in value.items():
            if factor <= 0:
                raise ValueError(f"multiplier for '{label}' must be positive")
        return {label.lower(): factor for label, factor in value.items()}

    # ── Lookups ─────────────────────────────────────────────
    @property
    def default_tier(self) -> str:
        """The lowest tier — used for unknown or absent tier labels."""
        return min(self.tiers, key=lambda label: self.tiers[label])

    def resolve_tier(self, tier: str | None) -> tuple[str, Decimal]:
        label = (tier or "").strip().lower()
        if label not in self.tiers:
            label = self.default_tier
        return label, self.tiers[label]

    def resolve_category(self, category: str | None) -> tuple[str | None, Decimal]:
        label = (category or "").strip().lower()
        if label not in self.categories:
            return None, _NEUTRAL
        return label, self.categories[label]

    @property
    def ceiling(self) -> Decimal:
        """Highest attainable effective multiplier given the table extremes."""
        top_category = max([_NEUTRAL, *self.categories.values()])
        return self.base_multiplier * max(self.tiers.values()) * top_category


def load_multiplier_table(path: str | Path) -> MultiplierTable:
    """Read and validate a multiplier table document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    return MultiplierTable.model_validate_json(raw)


@functools.lru_cache(maxsize=4)
def _cached_table(path: str) -> MultiplierTable:
    return load_multiplier_table(path)


def get_multiplier_table() -> MultiplierTable:
    """
    Return the active multiplier table.

    Loaded once per path and cached; the calculator itself stays pure.
    Usable directly as a FastAPI dependency.
    """
    return _cached_table(settings.MULTIPLIER_TABLE_PATH or str(_BUNDLED_TABLE))
