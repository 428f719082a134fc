"""Row builders shared by the test modules."""

import datetime
from decimal import Decimal

from loyalty_ledger.auth.hashing import display_prefix, generate_api_key
from loyalty_ledger.models.api_key import (
    APIKey,
    ApiKeyStatus,
    SCOPE_CMAL,
    SCOPE_REDEEM,
    SCOPE_USAGE,
)
from loyalty_ledger.models.code import Code, CodeType
from loyalty_ledger.models.developer import Developer

ALL_SCOPES = [SCOPE_REDEEM, SCOPE_CMAL, SCOPE_USAGE]


async def create_api_key(
    factory,
    *,
    scopes: list[str] | None = None,
    status: str = ApiKeyStatus.ACTIVE.value,
    rate_limit_per_minute: int = 60,
) -> tuple[str, APIKey]:
    """Insert a developer plus one key; returns (raw_key, api_key)."""
    raw_key, key_hash = generate_api_key()
    async with factory() as session:
        developer = Developer(name="Test Developer")
        session.add(developer)
        await session.flush()
        api_key = APIKey(
            developer_id=developer.id,
            key_hash=key_hash,
            prefix=display_prefix(raw_key),
            scopes=list(ALL_SCOPES if scopes is None else scopes),
            status=status,
            rate_limit_per_minute=rate_limit_per_minute,
        )
        session.add(api_key)
        await session.commit()
    return raw_key, api_key


async def create_code(
    factory,
    *,
    issuer_id: str = "issuer-1",
    code_type: str = CodeType.LOYALTY.value,
    points_value: int = 10,
    discount_pct: Decimal = Decimal("0"),
    scan_limit: int | None = None,
    scan_count: int = 0,
    active: bool = True,
    expires_at: datetime.datetime | None = None,
) -> Code:
    async with factory() as session:
        code = Code(
            issuer_id=issuer_id,
            code_type=code_type,
            points_value=points_value,
            discount_pct=discount_pct,
            scan_limit=scan_limit,
            scan_count=scan_count,
            active=active,
            expires_at=expires_at,
        )
        session.add(code)
        await session.commit()
    return code
