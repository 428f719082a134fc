"""
Usage metering middleware.

A pure ASGI middleware (no BaseHTTPMiddleware) so that it sees the final
status of EVERY request: successes, EngineError responses rendered by the
exception handlers, and unhandled exceptions (recorded as 500, then
re-raised to Starlette's server-error handler).

Per request:
  • a fresh Meter is placed on request.state.meter before routing
  • auth dependencies fill in api_key_id / developer_id
  • route handlers set billed_units
  • rate-limit feedback headers collected on the meter are added to the
    response start message
  • after the response is sent, one UsageRecord is written through its own
    session (services/usage_ledger.record_usage, never raises)
"""

from __future__ import annotations

import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from loyalty_ledger.core import database
from loyalty_ledger.services.usage_ledger import Meter, record_usage


def client_ip(scope: Scope) -> str | None:
    """First X-Forwarded-For hop, falling back to the socket peer."""
    forwarded = Headers(scope=scope).get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    client = scope.get("client")
    return client[0] if client else None


class UsageMeteringMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.app = app
        self.session_factory = session_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        meter = Meter()
        scope.setdefault("state", {})["meter"] = meter
        status_code = 500
        started = time.perf_counter()

        async def send_with_meter(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = MutableHeaders(scope=message)
                for name, value in meter.headers.items():
                    headers[name] = value
            await send(message)

        try:
            await self.app(scope, receive, send_with_meter)
        finally:
            latency_ms = int((time.perf_counter() - started) * 1000)
            await record_usage(
                self.session_factory or database.async_session_factory,
                api_key_id=meter.api_key_id,
                developer_id=meter.developer_id,
                endpoint=scope["path"],
                method=scope["method"],
                status_code=status_code,
                latency_ms=latency_ms,
                billed_units=meter.billable_units(status_code),
                ip_address=client_ip(scope),
                user_agent=Headers(scope=scope).get("user-agent"),
            )
