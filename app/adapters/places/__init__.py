"""Places adapter layer - abstracts over the upstream search provider."""

from app.adapters.places.base import AbstractPlacesClient
from app.adapters.places.factory import create_places_client
from app.adapters.places.google_client import GooglePlacesClient

__all__ = [
    "AbstractPlacesClient",
    "GooglePlacesClient",
    "create_places_client",
]
