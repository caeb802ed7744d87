"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports ``app.core.config`` so
the global settings object is built with test values (in-memory store, a
dummy Google key).
"""

import copy
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Sequence

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-google-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

import pytest

from app.adapters.places.base import AbstractPlacesClient
from app.adapters.store.base import AbstractStore, CounterReading, Row
from app.adapters.store.in_memory import InMemoryStore
from app.core.config import PlacesCacheSettings
from app.core.errors import StoreUnavailableAppError
from app.services.rate_limiter import RateLimitDecision, RateLimiter


class FakeClock:
    """Deterministic clock usable both as ``now()`` and as a UNIX timestamp."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def timestamp(self) -> float:
        return self.current.timestamp()

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakePlacesClient(AbstractPlacesClient):
    """Upstream stand-in that records calls and returns canned places."""

    def __init__(self, places: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.places = places or []
        self.error = error
        self.calls: list[tuple[float, float, float]] = []

    async def search_nearby(self, lat: float, lng: float, radius_m: float) -> list[dict[str, Any]]:
        self.calls.append((lat, lng, radius_m))
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.places)


class RecordingStore(AbstractStore):
    """Wraps an InMemoryStore, records calls and can fail chosen operations."""

    def __init__(self, inner: InMemoryStore | None = None, fail_on: Iterable[str] = ()) -> None:
        self.inner = inner or InMemoryStore()
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, str]] = []

    def _record(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if operation in self.fail_on:
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message=f"Store operation '{operation}' failed",
            )

    def get(self, table: str, key_column: str, value: Any) -> Row | None:
        self._record("get", table)
        return self.inner.get(table, key_column, value)

    def upsert(self, table: str, rows: Sequence[Row], *, conflict_key: str) -> None:
        self._record("upsert", table)
        self.inner.upsert(table, rows, conflict_key=conflict_key)

    def query_by_keys(self, table: str, key_column: str, keys: Iterable[Any]) -> list[Row]:
        self._record("query_by_keys", table)
        return self.inner.query_by_keys(table, key_column, keys)

    def insert(self, table: str, row: Row) -> Row:
        self._record("insert", table)
        return self.inner.insert(table, row)

    def increment_and_read(self, route: str, fingerprint: str, *, window_seconds: int, limit: int) -> CounterReading:
        self._record("increment_and_read", "rate_limits")
        return self.inner.increment_and_read(route, fingerprint, window_seconds=window_seconds, limit=limit)

    def ping(self) -> None:
        self._record("ping", "cafes")


def google_place(place_id: str, **overrides: Any) -> dict[str, Any]:
    """Build a raw Places API (v1) record."""
    place: dict[str, Any] = {
        "id": place_id,
        "displayName": {"text": f"Cafe {place_id}", "languageCode": "en"},
        "formattedAddress": f"{place_id} Market St, San Francisco",
        "location": {"latitude": 37.7749, "longitude": -122.4194},
        "rating": 4.5,
        "userRatingCount": 120,
        "priceLevel": "PRICE_LEVEL_MODERATE",
        "types": ["cafe", "food"],
    }
    place.update(overrides)
    return place


def run_concurrent_checks(
    limiter: RateLimiter,
    *,
    threads: int,
    calls_per_thread: int,
    limit: int,
    client: str = "198.51.100.9",
    route: str = "GET /v1/cafes",
) -> list[RateLimitDecision]:
    """Hammer one (route, client) counter from several threads at once."""

    def worker() -> list[RateLimitDecision]:
        return [limiter.check(client, route, limit=limit, window_seconds=60) for _ in range(calls_per_thread)]

    with ThreadPoolExecutor(max_workers=threads) as pool:
        futures = [pool.submit(worker) for _ in range(threads)]
        return [decision for future in futures for decision in future.result()]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(clock=clock.timestamp)


@pytest.fixture
def store(memory_store: InMemoryStore) -> RecordingStore:
    return RecordingStore(memory_store)


@pytest.fixture
def cache_config() -> PlacesCacheSettings:
    return PlacesCacheSettings(
        query_latlng_precision=3,
        cache_ttl_seconds=900,
        radius_min_m=200,
        radius_max_m=5000,
        radius_default_m=1500,
    )
