"""Google Places (v1) Nearby Search adapter."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from app.adapters.places.base import AbstractPlacesClient
from app.core.errors import UpstreamAppError

logger = logging.getLogger(__name__)

SEARCH_NEARBY_URL = "https://places.googleapis.com/v1/places:searchNearby"

# Only the fields we persist; a narrower mask is also billed at a lower tier.
FIELD_MASK = ",".join(
    [
        "places.id",
        "places.displayName",
        "places.formattedAddress",
        "places.location",
        "places.rating",
        "places.userRatingCount",
        "places.priceLevel",
        "places.types",
    ]
)

_MAX_ERROR_BODY_CHARS = 500


class GooglePlacesClient(AbstractPlacesClient):
    """Client for the Places API ``places:searchNearby`` endpoint.

    Each search opens its own ``httpx.AsyncClient`` bounded by
    ``timeout_seconds``; nothing is cached or retried here.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        url: str = SEARCH_NEARBY_URL,
        included_types: Sequence[str] = ("cafe",),
        max_result_count: int = 20,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Google Maps Platform key.
            url: Nearby Search endpoint.
            included_types: Place types to search for.
            max_result_count: Maximum places returned per search (1-20).
            timeout_seconds: Timeout for the whole request.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self.api_key = api_key
        self.url = url
        self.included_types = list(included_types)
        self.max_result_count = max_result_count
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _build_body(self, lat: float, lng: float, radius_m: float) -> dict[str, Any]:
        return {
            "includedTypes": self.included_types,
            "maxResultCount": self.max_result_count,
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": radius_m,
                },
            },
        }

    async def search_nearby(self, lat: float, lng: float, radius_m: float) -> list[dict[str, Any]]:
        """Run one Nearby Search and return the raw ``places`` records.

        Raises:
            UpstreamAppError: Missing API key, timeout, transport error,
                non-2xx status or a body that is not JSON.
        """
        if not self.api_key:
            raise UpstreamAppError(
                code="places_missing_api_key",
                message="Google Places requires GOOGLE_MAPS_API_KEY",
            )

        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.url,
                    json=self._build_body(lat, lng, radius_m),
                    headers=headers,
                )
        except httpx.TimeoutException as exc:
            logger.warning("places.request_failed", extra={"reason": "timeout"})
            raise UpstreamAppError(
                code="places_timeout",
                message=f"Google Places did not answer within {self.timeout_seconds:g}s",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "places.request_failed",
                extra={"reason": "network", "error_type": type(exc).__name__},
            )
            raise UpstreamAppError(
                code="places_network_error",
                message=f"Google Places request failed: {exc}",
            ) from exc

        if response.is_error:
            body = response.text[:_MAX_ERROR_BODY_CHARS]
            logger.warning(
                "places.request_failed",
                extra={"reason": "http_status", "http_status": response.status_code},
            )
            raise UpstreamAppError(
                code="places_http_error",
                message=f"Google Places error {response.status_code}: {body}",
                details={"http_status": response.status_code, "upstream_body": body},
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamAppError(
                code="places_invalid_response",
                message="Google Places returned a non-JSON body",
            ) from exc

        places = payload.get("places") if isinstance(payload, dict) else None
        return list(places or [])
