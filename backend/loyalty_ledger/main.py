"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity, prune stale rate windows.
  • On shutdown: dispose the engine cleanly.

Routers:
  • /redeem               — code redemption (scope "redeem")
  • /calculate, /attribute — economic attribution (scope "cmal")
  • /usage                — monthly billed units (scope "usage")
  • /health               — liveness check, never billed

Errors are rendered as {"error": message, "kind": kind}.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from loyalty_ledger.auth.dependencies import get_optional_api_key
from loyalty_ledger.core.config import settings
from loyalty_ledger.core.database import async_session_factory, engine
from loyalty_ledger.core.errors import EngineError, InternalError, NotFoundError, ValidationError
from loyalty_ledger.middleware import UsageMeteringMiddleware
from loyalty_ledger.models.api_key import APIKey
from loyalty_ledger.routers.cmal import router as cmal_router
from loyalty_ledger.routers.redeem import router as redeem_router
from loyalty_ledger.routers.usage import router as usage_router
from loyalty_ledger.schemas.usage import HealthOut
from loyalty_ledger.services.rate_limiter import prune_stale_windows
from loyalty_ledger.services.usage_ledger import UNITS_HEALTH

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    db_available = False
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
        db_available = True
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    # Startup — drop rate windows that can no longer block anyone
    if db_available:
        try:
            async with async_session_factory() as session:
                await prune_stale_windows(session)
        except Exception:
            logger.exception("Rate window pruning failed (non-fatal)")

    yield  # ← application runs here

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Loyalty redemption ledger and economic attribution engine — "
        "exactly-once code redemption, impact scoring, metered API access."
    ),
    lifespan=lifespan,
)

app.add_middleware(UsageMeteringMiddleware)

# Mount routers
app.include_router(redeem_router)
app.include_router(cmal_router)
app.include_router(usage_router)


# ── Error rendering ─────────────────────────────────────────
def _error_response(
    status_code: int,
    message: str,
    kind: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "kind": kind},
        headers=headers,
    )


@app.exception_handler(EngineError)
async def engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message, exc.kind, exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    _request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Pydantic input errors are Validation (400), not FastAPI's default 422."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = ValidationError.default_message
    return _error_response(400, message, ValidationError.kind)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    _request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    """Routing errors (unknown path, wrong method) in the same error shape."""
    if exc.status_code == 404:
        kind = NotFoundError.kind
    elif exc.status_code >= 500:
        kind = InternalError.kind
    else:
        kind = ValidationError.kind
    return _error_response(exc.status_code, str(exc.detail), kind, exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, _exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, InternalError.default_message, InternalError.kind)


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    response_model=HealthOut,
    tags=["System"],
    summary="Liveness check",
)
async def health_check(
    request: Request,
    _api_key: Annotated[APIKey | None, Depends(get_optional_api_key)],
) -> HealthOut:
    """Shallow health check — confirms the process is alive. Never billed."""
    request.state.meter.billed_units = UNITS_HEALTH
    return HealthOut(status="healthy", version=settings.APP_VERSION)
