"""
FastAPI dependencies for API key authentication.

Flow:
  1. Extract the raw key (Authorization: Bearer <key>, or X-API-Key)
  2. Hash the key (SHA-256)
  3. Look up api_keys by hash
  4. Reject status != active with 403
  5. Attribute the request to the key for usage metering

Security:
  • Generic 401 for missing / unknown keys (no hint which one)
  • Raw keys are NEVER logged
  • Hash lookup means the DB never sees the raw key

Scope and rate-limit enforcement live in auth/rate_limit.py and build on
get_current_api_key.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_ledger.auth.hashing import extract_api_key, hash_api_key
from loyalty_ledger.core.config import settings
from loyalty_ledger.core.database import get_db_session
from loyalty_ledger.core.errors import ForbiddenError, UnauthorizedError
from loyalty_ledger.models.api_key import APIKey

logger = logging.getLogger(__name__)


async def _lookup_api_key(session: AsyncSession, raw_key: str | None) -> APIKey | None:
    """The APIKey row for `raw_key` whatever its status, or None."""
    if not raw_key:
        return None
    stmt = select(APIKey).where(APIKey.key_hash == hash_api_key(raw_key))
    return (await session.execute(stmt)).scalar_one_or_none()


def _ensure_active(api_key: APIKey | None) -> APIKey:
    if api_key is None:
        raise UnauthorizedError()

    if not api_key.is_active:
        logger.info("Rejected %s key %s", api_key.status, api_key.prefix)
        raise ForbiddenError(f"API key is {api_key.status}.")

    return api_key


async def resolve_api_key(session: AsyncSession, raw_key: str | None) -> APIKey:
    """
    Map a raw key to its active APIKey row.

    Raises:
        UnauthorizedError: missing key or no key with that hash.
        ForbiddenError:    key exists but is suspended or revoked.
    """
    return _ensure_active(await _lookup_api_key(session, raw_key))


def _attribute(request: Request, api_key: APIKey) -> None:
    """Tag the in-flight request with the caller for the usage ledger."""
    meter = getattr(request.state, "meter", None)
    if meter is not None:
        meter.api_key_id = api_key.id
        meter.developer_id = api_key.developer_id


async def get_current_api_key(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    session: AsyncSession = Depends(get_db_session),
) -> APIKey:
    """
    FastAPI dependency — resolves the presented key to an active APIKey.

    Suspended / revoked keys are still attributed in the usage ledger
    before the 403 is raised.
    """
    api_key = await _lookup_api_key(session, extract_api_key(authorization, x_api_key))
    if api_key is not None:
        _attribute(request, api_key)
    return _ensure_active(api_key)


async def get_optional_api_key(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    session: AsyncSession = Depends(get_db_session),
) -> APIKey | None:
    """
    Authentication for unmetered system routes (/health).

    When HEALTH_REQUIRES_AUTH is set this behaves like get_current_api_key.
    Otherwise a presented key is only used to attribute the request, and an
    invalid one is ignored.
    """
    api_key = await _lookup_api_key(session, extract_api_key(authorization, x_api_key))
    if api_key is not None:
        _attribute(request, api_key)

    if settings.HEALTH_REQUIRES_AUTH:
        return _ensure_active(api_key)
    return api_key
