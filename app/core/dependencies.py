"""FastAPI dependency providers.

The store and the places client are process-wide singletons built from
settings on first use; services are cheap and built per request. Tests
replace any of these through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends

from app.adapters.places.base import AbstractPlacesClient
from app.adapters.places.factory import create_places_client
from app.adapters.store.base import AbstractStore
from app.adapters.store.factory import create_store
from app.core.config import settings
from app.services.checkin_service import CheckInService
from app.services.geo_cache_service import GeoCacheResolver
from app.services.rate_limiter import RateLimiter

_store: AbstractStore | None = None
_places_client: AbstractPlacesClient | None = None


def get_store() -> AbstractStore:
    """Return the process-wide store instance."""

    global _store
    if _store is None:
        _store = create_store(settings.store)
    return _store


def get_places_client() -> AbstractPlacesClient:
    """Return the process-wide upstream places client."""

    global _places_client
    if _places_client is None:
        _places_client = create_places_client(settings.places)
    return _places_client


def get_geo_cache_resolver(
    store: AbstractStore = Depends(get_store),
    places: AbstractPlacesClient = Depends(get_places_client),
) -> GeoCacheResolver:
    return GeoCacheResolver(store, places, settings.cache)


def get_rate_limiter(store: AbstractStore = Depends(get_store)) -> RateLimiter:
    return RateLimiter(store)


def get_checkin_service(store: AbstractStore = Depends(get_store)) -> CheckInService:
    return CheckInService(store)
