"""In-memory store.

Notes:
- Per-process only: running multiple workers gives each worker its own
  cache and its own rate-limit counters.
- Thread-safe: one lock guards all tables, which makes every method
  (including increment_and_read) atomic.
"""

from __future__ import annotations

import copy
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence

from app.adapters.store.base import (
    SURROGATE_ID_TABLES,
    AbstractStore,
    CounterReading,
    Row,
)


@dataclass
class _WindowState:
    window_start: int
    count: int
    limit: int


class InMemoryStore(AbstractStore):
    """Dict-backed store for development and tests."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize an empty store.

        Args:
            clock: Time source returning UNIX time in seconds; drives the
                rate-limit windows.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._tables: dict[str, list[Row]] = {}
        self._counters: dict[tuple[str, str], _WindowState] = {}

    def _rows(self, table: str) -> list[Row]:
        return self._tables.setdefault(table, [])

    def _find(self, table: str, column: str, value: Any) -> Row | None:
        for row in self._rows(table):
            if row.get(column) == value:
                return row
        return None

    def get(self, table: str, key_column: str, value: Any) -> Row | None:
        with self._lock:
            row = self._find(table, key_column, value)
            return copy.deepcopy(row) if row is not None else None

    def upsert(self, table: str, rows: Sequence[Row], *, conflict_key: str) -> None:
        with self._lock:
            for incoming in rows:
                existing = self._find(table, conflict_key, incoming[conflict_key])
                if existing is not None:
                    existing.update({k: copy.deepcopy(v) for k, v in incoming.items() if k != "id"})
                    continue
                row = copy.deepcopy(dict(incoming))
                if table in SURROGATE_ID_TABLES:
                    row.setdefault("id", str(uuid.uuid4()))
                self._rows(table).append(row)

    def query_by_keys(self, table: str, key_column: str, keys: Iterable[Any]) -> list[Row]:
        wanted = set(keys)
        if not wanted:
            return []
        with self._lock:
            return [copy.deepcopy(r) for r in self._rows(table) if r.get(key_column) in wanted]

    def insert(self, table: str, row: Row) -> Row:
        with self._lock:
            stored = copy.deepcopy(dict(row))
            stored.setdefault("id", str(uuid.uuid4()))
            self._rows(table).append(stored)
            return copy.deepcopy(stored)

    def increment_and_read(
        self,
        route: str,
        fingerprint: str,
        *,
        window_seconds: int,
        limit: int,
    ) -> CounterReading:
        now = self._clock()
        window_start = int(now // window_seconds) * window_seconds
        reset_at = window_start + window_seconds

        with self._lock:
            state = self._counters.get((route, fingerprint))
            if state is None or state.window_start != window_start:
                state = _WindowState(window_start=window_start, count=0, limit=limit)
                self._counters[(route, fingerprint)] = state
            state.count += 1
            state.limit = limit
            return CounterReading(
                count=state.count,
                reset_at=datetime.fromtimestamp(reset_at, tz=timezone.utc),
            )

    def ping(self) -> None:
        return None
