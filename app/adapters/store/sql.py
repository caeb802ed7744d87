"""SQLAlchemy Core store for SQLite and PostgreSQL.

Upserts use ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent writers to the
same key resolve inside the database (last write wins). The rate-limit
counter is one ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement:
the window roll-over, the increment and the read of the new count happen
atomically, with no separate SELECT.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Sequence

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
    case,
    create_engine,
    insert,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.adapters.store.base import (
    CAFES_TABLE,
    CHECKINS_TABLE,
    PLACES_CACHE_TABLE,
    RATE_LIMITS_TABLE,
    AbstractStore,
    CounterReading,
    Row,
)
from app.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


metadata = MetaData()

cafes = Table(
    CAFES_TABLE,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("place_id", String(255), nullable=False, unique=True),
    Column("name", Text, nullable=False),
    Column("address", Text),
    Column("lat", Float, nullable=False),
    Column("lng", Float, nullable=False),
    Column("rating", Float),
    Column("user_rating_count", Integer),
    Column("price_level", SmallInteger),
    Column("types", JSON),
    Column("last_fetched_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

places_cache = Table(
    PLACES_CACHE_TABLE,
    metadata,
    Column("cache_key", String(255), primary_key=True),
    Column("lat_center", Float, nullable=False),
    Column("lng_center", Float, nullable=False),
    Column("radius_m", Float, nullable=False),
    Column("place_ids", JSON, nullable=False),
    Column("fetched_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
)

rate_limits = Table(
    RATE_LIMITS_TABLE,
    metadata,
    Column("route", String(128), primary_key=True),
    Column("fingerprint", String(64), primary_key=True),
    # epoch seconds; equality on integers keeps the roll-over check exact
    Column("window_start", BigInteger, nullable=False),
    Column("hits", Integer, nullable=False),
    Column("max_requests", Integer, nullable=False),
    Column("reset_at", BigInteger, nullable=False),
)

checkins = Table(
    CHECKINS_TABLE,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("cafe_id", String(36), ForeignKey(f"{CAFES_TABLE}.id"), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _as_utc(value: Any) -> Any:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_row(mapping: Any) -> Row:
    return {key: _as_utc(value) for key, value in mapping.items()}


class SqlAlchemyStore(AbstractStore):
    """Store backed by a relational database through SQLAlchemy Core."""

    def __init__(
        self,
        engine: Engine,
        *,
        create_schema: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Bind the store to an engine.

        Args:
            engine: SQLAlchemy engine (SQLite or PostgreSQL).
            create_schema: Create missing tables immediately.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If the engine's dialect has no upsert support here.
            StoreUnavailableAppError: If schema creation fails.
        """
        dialect = engine.dialect.name
        if dialect not in _DIALECT_INSERTS:
            raise ValueError(f"Unsupported database dialect: '{dialect}'. Supported: sqlite, postgresql")
        self._engine = engine
        self._insert = _DIALECT_INSERTS[dialect]
        self._clock = clock

        if create_schema:
            with self._store_errors("create_schema"):
                metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, create_schema: bool = True) -> "SqlAlchemyStore":
        return cls(create_engine(url, echo=echo), create_schema=create_schema)

    @contextmanager
    def _store_errors(self, operation: str, table: str | None = None) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "store.operation_failed",
                extra={"operation": operation, "table": table, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message=f"Store operation '{operation}' failed",
                details={"operation": operation, "table": table or ""},
            ) from exc

    def _table(self, name: str) -> Table:
        try:
            return metadata.tables[name]
        except KeyError:
            raise ValueError(f"Unknown table: '{name}'") from None

    def get(self, table: str, key_column: str, value: Any) -> Row | None:
        tbl = self._table(table)
        stmt = select(tbl).where(tbl.c[key_column] == value).limit(1)
        with self._store_errors("get", table):
            with self._engine.connect() as conn:
                found = conn.execute(stmt).mappings().first()
        return _to_row(found) if found is not None else None

    def upsert(self, table: str, rows: Sequence[Row], *, conflict_key: str) -> None:
        if not rows:
            return
        tbl = self._table(table)
        stmt = self._insert(tbl)
        updates = {
            name: stmt.excluded[name]
            for name in rows[0]
            if name not in (conflict_key, "id")
        }
        stmt = stmt.on_conflict_do_update(index_elements=[tbl.c[conflict_key]], set_=updates)
        with self._store_errors("upsert", table):
            with self._engine.begin() as conn:
                conn.execute(stmt, [dict(r) for r in rows])

    def query_by_keys(self, table: str, key_column: str, keys: Iterable[Any]) -> list[Row]:
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return []
        tbl = self._table(table)
        stmt = select(tbl).where(tbl.c[key_column].in_(wanted))
        with self._store_errors("query_by_keys", table):
            with self._engine.connect() as conn:
                return [_to_row(m) for m in conn.execute(stmt).mappings().all()]

    def insert(self, table: str, row: Row) -> Row:
        tbl = self._table(table)
        values = dict(row)
        if "id" in tbl.c:
            values.setdefault("id", _new_id())
        stmt = insert(tbl).values(**values).returning(*tbl.c)
        with self._store_errors("insert", table):
            with self._engine.begin() as conn:
                return _to_row(conn.execute(stmt).mappings().one())

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

        stmt = self._insert(rate_limits).values(
            route=route,
            fingerprint=fingerprint,
            window_start=window_start,
            hits=1,
            max_requests=limit,
            reset_at=reset_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[rate_limits.c.route, rate_limits.c.fingerprint],
            set_={
                "hits": case(
                    (rate_limits.c.window_start == stmt.excluded.window_start, rate_limits.c.hits + 1),
                    else_=1,
                ),
                "window_start": stmt.excluded.window_start,
                "max_requests": stmt.excluded.max_requests,
                "reset_at": stmt.excluded.reset_at,
            },
        ).returning(rate_limits.c.hits, rate_limits.c.reset_at)

        with self._store_errors("increment_and_read", RATE_LIMITS_TABLE):
            with self._engine.begin() as conn:
                hits, stored_reset = conn.execute(stmt).one()

        return CounterReading(
            count=int(hits),
            reset_at=datetime.fromtimestamp(int(stored_reset), tz=timezone.utc),
        )

    def ping(self) -> None:
        with self._store_errors("ping", CAFES_TABLE):
            with self._engine.connect() as conn:
                conn.execute(select(cafes.c.id).limit(1)).all()
