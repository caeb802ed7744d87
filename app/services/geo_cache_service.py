"""Geo-bucketed cache in front of the upstream places search.

A query (lat, lng, radius) is mapped to a bucket key by clamping the radius
and rounding both coordinates to ``PLACES_QUERY_LATLNG_PRECISION`` decimals.
A fresh, non-empty bucket is answered from the store; anything else goes to
the provider, and the results are written back:

    lookup -> [miss] search upstream -> normalize -> de-duplicate
           -> upsert cafes -> upsert cache entry -> read cafes back

Concurrency is left to the store. Two concurrent misses for one bucket may
both call upstream and both write the entry; the last write wins and no lock
is held across the upstream call.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable

from app.adapters.places.base import AbstractPlacesClient
from app.adapters.store.base import CAFES_TABLE, PLACES_CACHE_TABLE, AbstractStore, Row
from app.core.config import PlacesCacheSettings, clamp
from app.core.errors import ValidationAppError
from app.schemas.cafes import Cafe, NearbyCafesResponse

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_UPSTREAM = "upstream"
UNKNOWN_NAME = "Unknown"

_PRICE_LEVEL_PREFIX = "PRICE_LEVEL_"
_PRICE_LEVELS = {
    "FREE": 0,
    "INEXPENSIVE": 1,
    "MODERATE": 2,
    "EXPENSIVE": 3,
    "VERY_EXPENSIVE": 4,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_coordinate(value: Any) -> float | None:
    """Convert a number or numeric string to a finite float.

    Returns:
        The float value, or None when the input is missing, blank,
        non-numeric, NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def clamp_radius(radius: float | None, config: PlacesCacheSettings) -> float:
    """Saturate the requested radius into the configured bounds.

    An absent radius becomes ``radius_default_m`` (also clamped). Out-of-range
    values are never an error.
    """
    requested = config.radius_default_m if radius is None else radius
    return float(clamp(requested, config.radius_min_m, config.radius_max_m))


def round_coordinate(value: float, precision: int) -> float:
    """Round half away from zero at ``precision`` decimals.

    Works on the decimal representation, so 37.7745 rounds to 37.775 even
    though its binary float is slightly below the tie.
    """
    return float(_quantize(value, precision))


def _quantize(value: float, precision: int) -> Decimal:
    quantum = Decimal(1).scaleb(-precision)
    return Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def _format_decimal(value: Decimal) -> str:
    # plain notation: 1500.0 -> "1500", -0.000 -> "0", 1E-5 -> "0.00001"
    if value.is_zero():
        return "0"
    return format(value.normalize(), "f")


def build_cache_key(lat: float, lng: float, radius_m: float, precision: int) -> str:
    """Derive the bucket key for a query.

    Pure and deterministic: inputs that round to the same coordinates with the
    same clamped radius always produce the same key.

    Args:
        lat: Latitude, unrounded.
        lng: Longitude, unrounded.
        radius_m: Radius after clamping.
        precision: Decimal places kept for both coordinates.

    Returns:
        Key of the form ``nearby:{lat}:{lng}:r={radius}``.
    """
    r_lat = _format_decimal(_quantize(lat, precision))
    r_lng = _format_decimal(_quantize(lng, precision))
    r_radius = _format_decimal(Decimal(repr(float(radius_m))))
    return f"nearby:{r_lat}:{r_lng}:r={r_radius}"


def map_price_level(value: Any) -> int | None:
    """Map a provider price tier to 0-4.

    Accepts the v1 enum names (``PRICE_LEVEL_MODERATE``), the bare names
    (``moderate``) and the legacy integer tiers. Unknown or missing tiers map
    to None, never to 0.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= 4 else None
    if not isinstance(value, str):
        return None

    name = value.strip().upper()
    if name.startswith(_PRICE_LEVEL_PREFIX):
        name = name[len(_PRICE_LEVEL_PREFIX):]
    return _PRICE_LEVELS.get(name)


def _optional_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def _optional_count(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


def normalize_place(raw: dict[str, Any], fetched_at: datetime) -> Row | None:
    """Turn one raw provider record into a ``cafes`` row.

    Returns:
        The row, or None when the record has no id or no usable location.
    """
    place_id = raw.get("id")
    location = raw.get("location") or {}
    if not isinstance(location, dict):
        location = {}
    lat = parse_coordinate(location.get("latitude"))
    lng = parse_coordinate(location.get("longitude"))
    if not place_id or lat is None or lng is None:
        return None

    display_name = raw.get("displayName")
    name = display_name.get("text") if isinstance(display_name, dict) else None

    types = raw.get("types")

    return {
        "place_id": str(place_id),
        "name": name or UNKNOWN_NAME,
        "address": raw.get("formattedAddress") or None,
        "lat": lat,
        "lng": lng,
        "rating": _optional_float(raw.get("rating")),
        "user_rating_count": _optional_count(raw.get("userRatingCount")),
        "price_level": map_price_level(raw.get("priceLevel")),
        "types": [str(t) for t in types] if isinstance(types, list) else None,
        "last_fetched_at": fetched_at,
        "updated_at": fetched_at,
    }


def dedupe_by_place_id(rows: Iterable[Row]) -> list[Row]:
    """Keep one row per place_id: first position, last values."""
    unique: dict[str, Row] = {}
    for row in rows:
        unique[row["place_id"]] = row
    return list(unique.values())


def is_fresh(entry: Row, now: datetime) -> bool:
    expires_at = entry.get("expires_at")
    return expires_at is not None and now < expires_at


class GeoCacheResolver:
    """Answers nearby-café queries from the cache or the upstream provider.

    Stateless per call; every piece of shared state lives in the store.

    Attributes:
        store: Store holding ``cafes`` and ``places_cache``.
        places: Upstream places-search client.
        config: Rounding precision, TTL and radius bounds.
    """

    def __init__(
        self,
        store: AbstractStore,
        places: AbstractPlacesClient,
        config: PlacesCacheSettings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.places = places
        self.config = config
        self._clock = clock

    def _validate(self, lat: Any, lng: Any, radius: Any) -> tuple[float, float, float | None]:
        """Parse and check raw query values.

        Raises:
            ValidationAppError: If lat/lng are missing, malformed or out of
                range, or if a radius is given but is not a finite number.
        """
        lat_value = parse_coordinate(lat)
        lng_value = parse_coordinate(lng)
        if lat_value is None or lng_value is None:
            raise ValidationAppError(
                code="invalid_coordinates",
                message="Missing/invalid lat or lng",
            )
        if not -90.0 <= lat_value <= 90.0 or not -180.0 <= lng_value <= 180.0:
            raise ValidationAppError(
                code="coordinates_out_of_range",
                message="lat must be within [-90, 90] and lng within [-180, 180]",
            )

        radius_value: float | None = None
        if radius is not None and not (isinstance(radius, str) and not radius.strip()):
            radius_value = parse_coordinate(radius)
            if radius_value is None:
                raise ValidationAppError(
                    code="invalid_radius",
                    message="radius must be a finite number of meters",
                )

        return lat_value, lng_value, radius_value

    async def _read_cafes(self, place_ids: list[str]) -> list[Cafe]:
        rows = await asyncio.to_thread(self.store.query_by_keys, CAFES_TABLE, "place_id", place_ids)
        return [Cafe.model_validate(row) for row in rows]

    async def _cached_place_ids(self, cache_key: str, now: datetime) -> list[str] | None:
        """Return the bucket's place ids when the entry is usable, else None."""
        entry = await asyncio.to_thread(self.store.get, PLACES_CACHE_TABLE, "cache_key", cache_key)

        if entry is None:
            reason = "absent"
        elif not is_fresh(entry, now):
            reason = "expired"
        elif not entry.get("place_ids"):
            # An empty bucket may be a transient provider gap; always retry it.
            reason = "empty"
        else:
            logger.info("geo_cache.hit", extra={"cache_key": cache_key, "places": len(entry["place_ids"])})
            return list(entry["place_ids"])

        logger.info("geo_cache.miss", extra={"cache_key": cache_key, "reason": reason})
        return None

    async def _refresh(self, lat: float, lng: float, radius_m: float, cache_key: str) -> list[str]:
        """Fetch the bucket from upstream and write places and entry back.

        Returns:
            The place ids now stored for the bucket (may be empty).
        """
        raw_places = await self.places.search_nearby(lat, lng, radius_m)

        fetched_at = self._clock()
        normalized = (normalize_place(raw, fetched_at) for raw in raw_places if isinstance(raw, dict))
        rows = dedupe_by_place_id(row for row in normalized if row is not None)

        if rows:
            await asyncio.to_thread(self.store.upsert, CAFES_TABLE, rows, conflict_key="place_id")

        place_ids = [row["place_id"] for row in rows]
        precision = self.config.query_latlng_precision
        entry = {
            "cache_key": cache_key,
            "lat_center": round_coordinate(lat, precision),
            "lng_center": round_coordinate(lng, precision),
            "radius_m": radius_m,
            "place_ids": place_ids,
            "fetched_at": fetched_at,
            "expires_at": fetched_at + timedelta(seconds=self.config.cache_ttl_seconds),
        }
        await asyncio.to_thread(self.store.upsert, PLACES_CACHE_TABLE, [entry], conflict_key="cache_key")

        logger.info(
            "geo_cache.refreshed",
            extra={
                "cache_key": cache_key,
                "received": len(raw_places),
                "stored": len(place_ids),
                "ttl_s": self.config.cache_ttl_seconds,
            },
        )
        return place_ids

    async def resolve(self, lat: Any, lng: Any, radius: Any = None) -> NearbyCafesResponse:
        """Answer a nearby-café query.

        Args:
            lat: Latitude (number or numeric string).
            lng: Longitude (number or numeric string).
            radius: Requested radius in meters; None or blank uses the default.

        Returns:
            NearbyCafesResponse tagged ``cache`` or ``upstream``.

        Raises:
            ValidationAppError: Malformed input (nothing else is touched).
            StoreUnavailableAppError: Any store read or write failed.
            UpstreamAppError: The provider call failed.
        """
        lat_value, lng_value, radius_value = self._validate(lat, lng, radius)

        radius_m = clamp_radius(radius_value, self.config)
        cache_key = build_cache_key(lat_value, lng_value, radius_m, self.config.query_latlng_precision)

        cached_ids = await self._cached_place_ids(cache_key, self._clock())
        if cached_ids is not None:
            return NearbyCafesResponse(
                source=SOURCE_CACHE,
                cache_key=cache_key,
                radius_m=radius_m,
                cafes=await self._read_cafes(cached_ids),
            )

        # Upstream gets the unrounded point; only the key is bucketed.
        place_ids = await self._refresh(lat_value, lng_value, radius_m, cache_key)

        return NearbyCafesResponse(
            source=SOURCE_UPSTREAM,
            cache_key=cache_key,
            radius_m=radius_m,
            cafes=await self._read_cafes(place_ids),
        )
