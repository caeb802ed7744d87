"""Factory for the upstream places client."""

from app.adapters.places.base import AbstractPlacesClient
from app.adapters.places.google_client import GooglePlacesClient
from app.core.config import PlacesApiSettings, settings


def create_places_client(api_settings: PlacesApiSettings | None = None) -> AbstractPlacesClient:
    """Build the Google Places client from configuration.

    A missing API key is not rejected here; the first search raises
    ``UpstreamAppError`` instead, so the rest of the service (health checks,
    check-ins, cache hits) keeps working without one.
    """
    cfg = api_settings or settings.places
    return GooglePlacesClient(
        api_key=cfg.api_key,
        url=cfg.places_url,
        included_types=cfg.included_types,
        max_result_count=cfg.max_result_count,
        timeout_seconds=cfg.timeout_seconds,
    )
