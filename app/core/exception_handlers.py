"""Global exception handlers for consistent error responses.

Every ``AppError`` becomes ``{"error": {"code", "message", "request_id",
"details"?}}`` with a status chosen by its class:

- ValidationAppError → 400
- NotFoundAppError → 404
- RateLimitedAppError → 429 with Retry-After / X-RateLimit-* headers
- UpstreamAppError → 502
- StoreUnavailableAppError → 503
- anything else → generic 500 (no internals leaked)
"""

import logging
from datetime import datetime

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import (
    AppError,
    NotFoundAppError,
    RateLimitedAppError,
    StoreUnavailableAppError,
    UpstreamAppError,
    ValidationAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (NotFoundAppError, 404),
    (RateLimitedAppError, 429),
    (UpstreamAppError, 502),
    (StoreUnavailableAppError, 503),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _rate_limit_headers(exc: RateLimitedAppError) -> dict[str, str]:
    details = exc.details or {}
    headers = {
        "Retry-After": str(details.get("retry_after", 1)),
        "Cache-Control": "no-store",
    }
    if settings.rate_limit.include_headers:
        limit = details.get("limit", 0)
        headers["X-RateLimit-Limit"] = str(limit)
        headers["X-RateLimit-Remaining"] = str(max(0, limit - details.get("used", 0)))
        reset_at = details.get("reset_at")
        if reset_at:
            headers["X-RateLimit-Reset"] = str(int(datetime.fromisoformat(reset_at).timestamp()))
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format."""
    status_code = status_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    headers = _rate_limit_headers(exc) if isinstance(exc, RateLimitedAppError) else None

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net)."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
