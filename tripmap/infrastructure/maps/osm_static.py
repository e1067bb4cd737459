"""Third-party static map images from the public OpenStreetMap static map service.

No credential is required. Used only when the first-party static map is
unavailable, with a single attempt under the 'osm' endpoint class.
"""

import logging

import httpx

from tripmap.domain.interfaces.map_provider import StaticMapProvider
from tripmap.domain.models.common import OSM
from tripmap.domain.models.location import Location
from tripmap.domain.models.map import StaticMapImage
from tripmap.infrastructure.maps.azure_maps import image_from_response
from tripmap.infrastructure.resilience.api_retry import RetryOrchestrator

logger = logging.getLogger(__name__)

OSM_STATIC_MAP_URL = "https://staticmap.openstreetmap.de/staticmap.php"
OSM_MAP_SIZE = "600x400"


class OsmStaticMapProvider(StaticMapProvider):
    """Static map images rendered by staticmap.openstreetmap.de."""

    source = "openstreetmap"

    def __init__(self, http_client: httpx.AsyncClient, retry_orchestrator: RetryOrchestrator,
                 base_url: str = OSM_STATIC_MAP_URL):
        self.http_client = http_client
        self.retry_orchestrator = retry_orchestrator
        self.base_url = base_url

    def build_url(self, location: Location) -> str:
        center = f"{location.latitude},{location.longitude}"
        params = {
            "center": center,
            "zoom": location.zoom,
            "size": OSM_MAP_SIZE,
            "maptype": "mapnik",
            "markers": f"{center},red-pushpin",
        }
        return str(httpx.URL(self.base_url, params=params))

    async def fetch(self, location: Location) -> StaticMapImage:
        url = self.build_url(location)
        logger.debug(f"Fetching OpenStreetMap static map: {url}")

        async def call() -> httpx.Response:
            return await self.http_client.get(url)

        return await self.retry_orchestrator.execute(
            call, OSM, parse=lambda response: image_from_response(response, url, self.source)
        )
