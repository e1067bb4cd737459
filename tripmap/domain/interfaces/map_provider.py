"""Interfaces for the map sources used by the fallback chain."""

import abc

from tripmap.domain.models.location import Location
from tripmap.domain.models.map import LiveMap, StaticMapImage


class LiveMapLoader(abc.ABC):
    """Loads everything needed for an interactive map of a location."""

    @abc.abstractmethod
    async def load(self, location: Location) -> LiveMap:
        """Prepares the live map.

        Raises:
            Exception: If the map SDK or its credentials cannot be obtained.
        """
        pass


class StaticMapProvider(abc.ABC):
    """Fetches a static map image centred on a location."""

    #: Human readable provider name used in logs and renders.
    source: str = "static"

    @abc.abstractmethod
    async def fetch(self, location: Location) -> StaticMapImage:
        """Fetches the image.

        Raises:
            UpstreamError: If the provider is unavailable or rate limited.
        """
        pass
