from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_geo_cache_resolver
from app.core.rate_limit import ROUTE_CAFES, rate_limit
from app.schemas.cafes import NearbyCafesResponse
from app.services.geo_cache_service import GeoCacheResolver

router = APIRouter(tags=["Cafes"])


@router.get(
    "/cafes",
    response_model=NearbyCafesResponse,
    dependencies=[Depends(rate_limit(ROUTE_CAFES))],
)
async def nearby_cafes(
    lat: str | None = Query(None, description="Latitude in degrees"),
    lng: str | None = Query(None, description="Longitude in degrees"),
    radius: str | None = Query(None, description="Search radius in meters (clamped)"),
    resolver: GeoCacheResolver = Depends(get_geo_cache_resolver),
) -> NearbyCafesResponse:
    """Cafés near a coordinate, served from the geo cache when fresh.

    Query values are parsed by the resolver rather than by FastAPI so that a
    malformed number is reported as ``invalid_coordinates`` (400) like a
    missing one.

    Raises:
        ValidationAppError: 400 for missing/invalid lat, lng or radius.
        UpstreamAppError: 502 when Google Places fails.
        StoreUnavailableAppError: 503 when the store fails.
    """
    return await resolver.resolve(lat, lng, radius)
