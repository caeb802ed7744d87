"""Rate limiting dependency for FastAPI routes.

This module wires the store-backed ``RateLimiter`` into the HTTP layer.

Rate limiting strategy:
- Fixed window per (route, client fingerprint), counted atomically in the
  shared store so every worker sees the same counters.
- The client identity is the first X-Forwarded-For hop, then X-Real-IP,
  then the socket peer. Only its SHA-256 fingerprint is stored, and only a
  prefix of that fingerprint is logged.
- Fail closed: a store error surfaces as 503, never as an implicit allow.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends, Request

from app.core.config import settings
from app.core.dependencies import get_rate_limiter
from app.core.errors import RateLimitedAppError
from app.services.rate_limiter import (
    RateLimitDecision,
    RateLimiter,
    RouteLimit,
    fingerprint_client,
)

logger = logging.getLogger(__name__)

ROUTE_CAFES = "GET /v1/cafes"
ROUTE_CHECKINS = "POST /v1/checkins"

_UNKNOWN_CLIENT = "0.0.0.0"


def route_limit_for(route: str) -> RouteLimit:
    """Resolve the configured limit for a route identifier.

    Raises:
        KeyError: If the route has no configured limit.
    """
    cfg = settings.rate_limit
    limits = {
        ROUTE_CAFES: RouteLimit(ROUTE_CAFES, cfg.cafes_requests, cfg.cafes_window_seconds),
        ROUTE_CHECKINS: RouteLimit(ROUTE_CHECKINS, cfg.checkins_requests, cfg.checkins_window_seconds),
    }
    return limits[route]


def client_identity(request: Request) -> str:
    """Best-effort client address for rate limiting."""

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return _UNKNOWN_CLIENT


def rate_limit(route: str) -> Callable[..., RateLimitDecision | None]:
    """Build a dependency enforcing the limit configured for ``route``.

    Usage:
        @router.get("/cafes", dependencies=[Depends(rate_limit(ROUTE_CAFES))])
    """

    route_limit_for(route)  # unknown routes fail at import time, not per request

    def enforce_rate_limit(
        request: Request,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> RateLimitDecision | None:
        if not settings.rate_limit.enabled:
            return None

        route_limit = route_limit_for(route)
        identity = client_identity(request)
        decision = limiter.check_route(identity, route_limit)
        log_fields = {
            "route": route,
            "fingerprint": fingerprint_client(identity)[:12],
            "used": decision.used,
            "limit": decision.limit,
            "window_s": route_limit.window_seconds,
        }

        if decision.allowed:
            logger.info("rate_limit.allowed", extra=log_fields)
            return decision

        retry_after = decision.retry_after_seconds(datetime.now(timezone.utc))
        logger.warning("rate_limit.exceeded", extra={**log_fields, "retry_after_s": retry_after})

        raise RateLimitedAppError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details={
                "route": route,
                "used": decision.used,
                "limit": decision.limit,
                "reset_at": decision.reset_at.isoformat(),
                "retry_after": retry_after,
            },
        )

    return enforce_rate_limit
