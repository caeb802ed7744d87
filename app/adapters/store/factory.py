"""Factory for the configured store backend."""

from app.adapters.store.base import AbstractStore
from app.adapters.store.in_memory import InMemoryStore
from app.adapters.store.sql import SqlAlchemyStore
from app.core.config import StoreSettings, settings
from app.core.errors import ValidationAppError


def create_store(store_settings: StoreSettings | None = None) -> AbstractStore:
    """Instantiate the store selected by ``STORE_BACKEND``.

    Returns:
        AbstractStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryStore()

    if backend == "sql":
        return SqlAlchemyStore.from_url(
            cfg.database_url,
            echo=cfg.echo,
            create_schema=cfg.create_schema,
        )

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: memory, sql",
    )
