"""Pydantic schemas for nearby-café responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class Cafe(BaseModel):
    """A café as stored in the ``cafes`` table."""

    id: str = Field(..., description="Store-assigned surrogate identifier (used by check-ins).")
    place_id: str = Field(..., description="Immutable provider place identifier.")
    name: str = Field(..., description="Display name, 'Unknown' when the provider has none.")
    address: str | None = Field(None, description="Formatted address.")
    lat: float = Field(..., description="Latitude in degrees.")
    lng: float = Field(..., description="Longitude in degrees.")
    rating: float | None = Field(None, description="Average provider rating.")
    user_rating_count: int | None = Field(None, ge=0, description="Number of provider ratings.")
    price_level: int | None = Field(
        None,
        ge=0,
        le=4,
        description="0 free, 1 inexpensive, 2 moderate, 3 expensive, 4 very expensive; null if unknown.",
    )
    types: list[str] | None = Field(None, description="Provider category tags.")
    last_fetched_at: datetime | None = Field(None, description="When the provider last returned this place.")


class NearbyCafesResponse(BaseModel):
    """Result of one nearby-café lookup.

    The order of ``cafes`` carries no meaning; consumers sort as they need.
    """

    source: Literal["cache", "upstream"] = Field(
        ...,
        description="'cache' when served from a fresh cache entry, 'upstream' after a provider call.",
    )
    cache_key: str = Field(..., description="Bucket key derived from rounded coordinates and radius.")
    radius_m: float = Field(..., description="Radius actually used after clamping.")
    cafes: list[Cafe] = Field(default_factory=list)
