"""Unit tests for the store-backed rate limiter."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from app.adapters.store.in_memory import InMemoryStore
from app.core.errors import StoreUnavailableAppError
from app.services.rate_limiter import RateLimitDecision, RateLimiter, RouteLimit, fingerprint_client
from tests.conftest import RecordingStore, run_concurrent_checks

ROUTE = "GET /v1/cafes"


def _limiter(now: float = 1000.0) -> tuple[RateLimiter, Mock]:
    clock = Mock(return_value=now)
    return RateLimiter(InMemoryStore(clock=clock)), clock


def test_allows_up_to_limit_then_denies() -> None:
    limiter, _ = _limiter()

    decisions = [limiter.check("1.2.3.4", ROUTE, limit=3, window_seconds=60) for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.used for d in decisions] == [1, 2, 3, 4]
    assert decisions[2].remaining == 0
    assert decisions[3].used > decisions[3].limit


def test_denied_requests_keep_counting() -> None:
    limiter, _ = _limiter()
    for _ in range(3):
        limiter.check("1.2.3.4", ROUTE, limit=1, window_seconds=60)

    decision = limiter.check("1.2.3.4", ROUTE, limit=1, window_seconds=60)

    assert decision.allowed is False
    assert decision.used == 4


def test_resets_on_new_window() -> None:
    limiter, clock = _limiter(1000.0)
    limiter.check("k", ROUTE, limit=1, window_seconds=10)
    assert limiter.check("k", ROUTE, limit=1, window_seconds=10).allowed is False

    clock.return_value = 1010.0
    decision = limiter.check("k", ROUTE, limit=1, window_seconds=10)

    assert decision.allowed is True
    assert decision.used == 1


def test_reset_at_is_window_end() -> None:
    limiter, _ = _limiter(1005.0)

    decision = limiter.check("k", ROUTE, limit=5, window_seconds=10)

    assert decision.reset_at == datetime.fromtimestamp(1010, tz=timezone.utc)


def test_isolated_by_client_and_route() -> None:
    limiter, _ = _limiter()

    assert limiter.check("k1", ROUTE, limit=1, window_seconds=60).allowed is True
    assert limiter.check("k1", ROUTE, limit=1, window_seconds=60).allowed is False

    assert limiter.check("k2", ROUTE, limit=1, window_seconds=60).allowed is True
    assert limiter.check("k1", "POST /v1/checkins", limit=1, window_seconds=60).allowed is True


def test_check_route_uses_route_limit() -> None:
    limiter, _ = _limiter()
    route_limit = RouteLimit(route=ROUTE, limit=2, window_seconds=30)

    decision = limiter.check_route("k", route_limit)

    assert decision.limit == 2
    assert decision.used == 1


def test_store_failure_propagates() -> None:
    limiter = RateLimiter(RecordingStore(fail_on={"increment_and_read"}))

    with pytest.raises(StoreUnavailableAppError):
        limiter.check("k", ROUTE, limit=1, window_seconds=60)


@pytest.mark.parametrize(
    ("route", "limit", "window_seconds"),
    [
        ("", 1, 60),
        (ROUTE, 0, 60),
        (ROUTE, 1, 0),
    ],
)
def test_invalid_args(route: str, limit: int, window_seconds: int) -> None:
    limiter, _ = _limiter()

    with pytest.raises(ValueError):
        limiter.check("k", route, limit=limit, window_seconds=window_seconds)


class TestFingerprint:
    def test_stable_and_url_safe(self) -> None:
        fp = fingerprint_client("203.0.113.7")

        assert fp == fingerprint_client("203.0.113.7")
        assert fp == fingerprint_client(b"203.0.113.7")
        assert len(fp) == 43
        assert "=" not in fp and "+" not in fp and "/" not in fp

    def test_does_not_contain_identity(self) -> None:
        assert "203.0.113.7" not in fingerprint_client("203.0.113.7")

    def test_distinct_identities_differ(self) -> None:
        assert fingerprint_client("a") != fingerprint_client("b")

    def test_store_never_sees_raw_identity(self) -> None:
        store = Mock()
        store.increment_and_read.return_value = Mock(count=1, reset_at=datetime(2025, 1, 1, tzinfo=timezone.utc))

        RateLimiter(store).check("203.0.113.7", ROUTE, limit=1, window_seconds=60)

        args, _ = store.increment_and_read.call_args
        assert args == (ROUTE, fingerprint_client("203.0.113.7"))


def test_retry_after_is_at_least_one_second() -> None:
    reset_at = datetime(2025, 1, 1, 12, 0, 30, tzinfo=timezone.utc)
    decision = RateLimitDecision(allowed=False, used=2, limit=1, reset_at=reset_at)

    assert decision.retry_after_seconds(datetime(2025, 1, 1, 12, 0, 0, 500000, tzinfo=timezone.utc)) == 30
    assert decision.retry_after_seconds(reset_at) == 1


def test_concurrent_checks_count_every_request_once() -> None:
    limiter, _ = _limiter()

    decisions = run_concurrent_checks(limiter, threads=8, calls_per_thread=10, limit=50)

    used = sorted(d.used for d in decisions)
    assert used == list(range(1, 81))
    assert [d.allowed for d in sorted(decisions, key=lambda d: d.used)] == [True] * 50 + [False] * 30
