"""
Engine error taxonomy.

Every business-rule and caller-input failure is raised as an EngineError
subclass carrying a machine-readable `kind` and the HTTP status it maps to.
main.py renders them as {"error": message, "kind": kind}.

InternalError always carries a generic message — the real cause is logged
where it is raised, never returned to the client.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all errors surfaced to API callers."""

    kind: str = "Internal"
    status_code: int = 500
    default_message: str = "Internal server error."

    def __init__(
        self,
        message: str | None = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.headers = headers or {}
        super().__init__(self.message)


class ValidationError(EngineError):
    kind = "Validation"
    status_code = 400
    default_message = "Invalid request."


class UnauthorizedError(EngineError):
    kind = "Unauthorized"
    status_code = 401
    default_message = "Invalid or missing API key."


class ForbiddenError(EngineError):
    kind = "Forbidden"
    status_code = 403
    default_message = "API key is not permitted to perform this request."


class NotFoundError(EngineError):
    kind = "NotFound"
    status_code = 404
    default_message = "Resource not found."


class InactiveError(EngineError):
    kind = "Inactive"
    status_code = 409
    default_message = "Code is inactive."


class ExpiredError(EngineError):
    kind = "Expired"
    status_code = 409
    default_message = "Code has expired."


class LimitExceededError(EngineError):
    kind = "LimitExceeded"
    status_code = 409
    default_message = "Code scan limit reached."


class RateLimitedError(EngineError):
    """Raised when an API key exceeds its per-minute request ceiling."""

    kind = "RateLimited"
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(self, retry_after: int, limit: int) -> None:
        super().__init__(
            f"Rate limit exceeded. Max {limit}/min.",
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after
        self.limit = limit


class InternalError(EngineError):
    """Store / infrastructure failure. Message is always generic."""
