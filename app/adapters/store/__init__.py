"""Store adapters.

The services only see ``AbstractStore``; the in-memory backend serves local
development and tests, the SQLAlchemy backend serves SQLite/PostgreSQL.
"""

from app.adapters.store.base import AbstractStore, CounterReading
from app.adapters.store.factory import create_store
from app.adapters.store.in_memory import InMemoryStore
from app.adapters.store.sql import SqlAlchemyStore

__all__ = [
    "AbstractStore",
    "CounterReading",
    "InMemoryStore",
    "SqlAlchemyStore",
    "create_store",
]
