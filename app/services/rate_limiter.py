"""Per-route, per-client rate limiter.

The limiter owns no state. For each request it hashes the client identity
into a fingerprint and asks the store to count the request atomically
within (route, fingerprint, current window); the decision is taken from the
count the store returns, never from a separate read.

Failure policy: fail closed. A store error propagates as
``StoreUnavailableAppError`` and the request is rejected (503); the limiter
never falls back to allowing traffic it could not count.
"""

from __future__ import annotations

import base64
import hashlib
import math
from dataclasses import dataclass
from datetime import datetime

from app.adapters.store.base import AbstractStore


@dataclass(frozen=True)
class RouteLimit:
    """Limit applied to one route."""

    route: str
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request may proceed (``used <= limit``).
        used: Requests counted in the current window, this one included.
        limit: Max requests per window.
        reset_at: When the current window ends.
    """

    allowed: bool
    used: int
    limit: int
    reset_at: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def retry_after_seconds(self, now: datetime) -> int:
        """Whole seconds until the window resets, at least 1."""
        return max(1, math.ceil((self.reset_at - now).total_seconds()))


def fingerprint_client(identity: bytes | str) -> str:
    """Hash a client identity into a stable, non-reversible fingerprint.

    Returns:
        Unpadded base64url SHA-256 digest (43 characters).
    """
    raw = identity.encode("utf-8") if isinstance(identity, str) else identity
    digest = hashlib.sha256(raw).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class RateLimiter:
    """Fixed-window limiter whose counting is delegated to the store."""

    def __init__(self, store: AbstractStore) -> None:
        self.store = store

    def check(
        self,
        client_identity: bytes | str,
        route: str,
        *,
        limit: int,
        window_seconds: int,
    ) -> RateLimitDecision:
        """Count one request and decide whether it is allowed.

        Args:
            client_identity: Opaque client identity (e.g. the client IP).
            route: Route identifier, e.g. ``"GET /v1/cafes"``.
            limit: Max requests per window.
            window_seconds: Window size in seconds.

        Returns:
            RateLimitDecision for this request.

        Raises:
            ValueError: If route is empty or limit/window are invalid.
            StoreUnavailableAppError: If the store cannot count the request.
        """
        if not route:
            raise ValueError("route must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        reading = self.store.increment_and_read(
            route,
            fingerprint_client(client_identity),
            window_seconds=window_seconds,
            limit=limit,
        )
        return RateLimitDecision(
            allowed=reading.count <= limit,
            used=reading.count,
            limit=limit,
            reset_at=reading.reset_at,
        )

    def check_route(self, client_identity: bytes | str, route_limit: RouteLimit) -> RateLimitDecision:
        return self.check(
            client_identity,
            route_limit.route,
            limit=route_limit.limit,
            window_seconds=route_limit.window_seconds,
        )
