"""Store interface.

Services depend on this abstraction only, so the backing store (in-memory,
SQLite, PostgreSQL) can be swapped without touching the resolver or the
limiter. Rows are plain dicts; timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

CAFES_TABLE = "cafes"
PLACES_CACHE_TABLE = "places_cache"
RATE_LIMITS_TABLE = "rate_limits"
CHECKINS_TABLE = "checkins"

# Tables whose rows get a store-assigned surrogate "id".
SURROGATE_ID_TABLES = frozenset({CAFES_TABLE, CHECKINS_TABLE})

Row = dict[str, Any]


@dataclass(frozen=True)
class CounterReading:
    """Result of one atomic increment-and-read.

    Attributes:
        count: Requests seen in the current window, this one included.
        reset_at: When the current window ends.
    """

    count: int
    reset_at: datetime


class AbstractStore(ABC):
    """Key-value/row store with upsert-by-unique-column semantics.

    Every method raises ``StoreUnavailableAppError`` when the store fails.
    A missing row is reported as ``None`` (or an empty list), never as an
    error.
    """

    @abstractmethod
    def get(self, table: str, key_column: str, value: Any) -> Row | None:
        """Return the row whose ``key_column`` equals ``value``, if any."""
        raise NotImplementedError

    @abstractmethod
    def upsert(self, table: str, rows: Sequence[Row], *, conflict_key: str) -> None:
        """Insert rows, or update in place those whose ``conflict_key`` exists.

        Updating overwrites every column supplied in the row and keeps the
        existing surrogate id. Last write wins.
        """
        raise NotImplementedError

    @abstractmethod
    def query_by_keys(self, table: str, key_column: str, keys: Iterable[Any]) -> list[Row]:
        """Return all rows whose ``key_column`` is one of ``keys``."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert a new row and return it as stored (with its id)."""
        raise NotImplementedError

    @abstractmethod
    def increment_and_read(
        self,
        route: str,
        fingerprint: str,
        *,
        window_seconds: int,
        limit: int,
    ) -> CounterReading:
        """Atomically count one request for (route, fingerprint).

        The store owns the fixed-window arithmetic: when the stored window
        has ended the counter restarts at 1. Incrementing and reading the
        new count happen in a single operation.
        """
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> None:
        """Raise ``StoreUnavailableAppError`` if the store is unreachable."""
        raise NotImplementedError
