"""Interface for remote geocoding services."""

import abc
from typing import Optional

from tripmap.domain.models.location import Location


class Geocoder(abc.ABC):
    """Abstract Base Class for resolving a free-text query to a Location."""

    @abc.abstractmethod
    async def geocode(self, query: str) -> Optional[Location]:
        """Geocodes a query through the resilience layer.

        Args:
            query: A place name or free text.

        Returns:
            The best matching Location, or None if the service found nothing usable.

        Raises:
            RateLimited: If the service is rate limiting or its circuit is open.
            UpstreamError: For any other definitive failure.
        """
        pass
