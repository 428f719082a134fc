"""
API key guard: scope check + per-key rate limit.

Order in the request pipeline: AUTH → SCOPE → RATE LIMIT → ROUTER LOGIC.

  • authorize()      — the full guard as a plain coroutine (raw key in,
                       DeveloperContext out); used by tests and scripts.
  • require_scope()  — FastAPI dependency factory wrapping the same steps
                       for a route.

Every authenticated response carries rate-limit feedback headers; a 429
also carries Retry-After with the seconds until the window resets.
"""

from __future__ import annotations

import datetime
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_ledger.auth.dependencies import get_current_api_key, resolve_api_key
from loyalty_ledger.core.database import get_db_session
from loyalty_ledger.core.errors import ForbiddenError, RateLimitedError
from loyalty_ledger.models.api_key import APIKey
from loyalty_ledger.services.rate_limiter import check_and_increment_request


@dataclass(frozen=True, slots=True)
class DeveloperContext:
    """Authorized caller injected into every protected route.

    Attributes:
        developer_id:          Account billed for the request.
        api_key_id:            The specific key used for this request.
        scopes:                Scopes granted to the key.
        rate_limit_per_minute: The key's ceiling.
        requests_remaining:    Requests left in the current window.
        resets_in:             Seconds until the window resets.
    """

    developer_id: uuid.UUID
    api_key_id: uuid.UUID
    scopes: frozenset[str]
    rate_limit_per_minute: int
    requests_remaining: int
    resets_in: int

    def feedback_headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.rate_limit_per_minute),
            "X-RateLimit-Remaining": str(self.requests_remaining),
            "X-RateLimit-Reset": str(self.resets_in),
            "X-API-Scopes": ",".join(sorted(self.scopes)),
        }


async def authorize_key(
    session: AsyncSession,
    api_key: APIKey,
    required_scope: str,
    now: datetime.datetime | None = None,
) -> DeveloperContext:
    """Scope check, then atomic check-and-increment of the rate window."""
    scopes = frozenset(api_key.scopes or ())
    if required_scope not in scopes:
        raise ForbiddenError(f"API key does not have the '{required_scope}' scope.")

    window = await check_and_increment_request(
        session, api_key.id, api_key.rate_limit_per_minute, now=now,
    )

    return DeveloperContext(
        developer_id=api_key.developer_id,
        api_key_id=api_key.id,
        scopes=scopes,
        rate_limit_per_minute=api_key.rate_limit_per_minute,
        requests_remaining=window.remaining,
        resets_in=window.resets_in,
    )


async def authorize(
    session: AsyncSession,
    raw_key: str | None,
    required_scope: str,
    now: datetime.datetime | None = None,
) -> DeveloperContext:
    """
    Authorize(rawKey, requiredScope) -> DeveloperContext.

    Raises UnauthorizedError, ForbiddenError or RateLimitedError.
    """
    api_key = await resolve_api_key(session, raw_key)
    return await authorize_key(session, api_key, required_scope, now=now)


def require_scope(scope: str) -> Callable[..., Awaitable[DeveloperContext]]:
    """
    Build a dependency enforcing `scope` plus the key's rate limit.

    Usage in routers:
        Guard = Annotated[DeveloperContext, Depends(require_scope(SCOPE_CMAL))]
    """

    async def enforce(
        request: Request,
        api_key: APIKey = Depends(get_current_api_key),
        session: AsyncSession = Depends(get_db_session),
    ) -> DeveloperContext:
        meter = request.state.meter
        try:
            context = await authorize_key(session, api_key, scope)
        except RateLimitedError as exc:
            meter.headers.update({
                "X-RateLimit-Limit": str(exc.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(exc.retry_after),
            })
            raise

        meter.headers.update(context.feedback_headers())
        return context

    return enforce
