from __future__ import annotations

from fastapi import APIRouter, Depends

from app.adapters.store.base import AbstractStore
from app.core.dependencies import get_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; does not touch the store."""

    return {"status": "ok"}


@router.get("/health/store")
def store_health_check(store: AbstractStore = Depends(get_store)) -> dict:
    """Readiness probe: one trivial read against the store.

    A failing store raises ``StoreUnavailableAppError``, answered as 503.
    """

    store.ping()
    return {"status": "ok"}
