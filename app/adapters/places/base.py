from abc import ABC, abstractmethod
from typing import Any


class AbstractPlacesClient(ABC):
    """Interface for upstream places-search providers."""

    @abstractmethod
    async def search_nearby(self, lat: float, lng: float, radius_m: float) -> list[dict[str, Any]]:
        """Search places around a point.

        Args:
            lat: Latitude of the search center, in degrees.
            lng: Longitude of the search center, in degrees.
            radius_m: Search radius in meters.

        Returns:
            list[dict[str, Any]]: Raw provider records (possibly empty).

        Raises:
            UpstreamAppError: If the provider call fails, times out or answers
                with a non-success status.
        """
        ...
