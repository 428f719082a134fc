"""Response schema for the monthly usage summary."""

from __future__ import annotations

from loyalty_ledger.schemas.base import CamelModel


class UsageSummaryOut(CamelModel):
    """Billed units for one endpoint in the current calendar month."""

    endpoint: str
    billed_units: int
    request_count: int


class HealthOut(CamelModel):
    status: str
    version: str
