"""Azure Maps adapters: geocoding, static images, map auth and the live map.

Hides the specifics of the Azure Maps REST API. Every request goes through
the RetryOrchestrator under its own endpoint class ('geocode', 'static_map',
or 'map' for the live control); the subscription key stays server side and
is redacted from logs.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from tripmap.core.exceptions import BadRequest, UpstreamUnavailable
from tripmap.domain.interfaces.geocoder import Geocoder
from tripmap.domain.interfaces.map_provider import LiveMapLoader, StaticMapProvider
from tripmap.domain.models.common import GEOCODE, MAP, STATIC_MAP, AuthOptions
from tripmap.domain.models.location import InvalidLocationError, Location, validate_coordinates, validate_zoom
from tripmap.domain.models.map import LiveMap, StaticMapImage
from tripmap.infrastructure.monitoring.logger_setup import redact_url
from tripmap.infrastructure.resilience.api_retry import RetryOrchestrator

logger = logging.getLogger(__name__)

AZURE_MAPS_BASE_URL = "https://atlas.microsoft.com"
SEARCH_ADDRESS_PATH = "/search/address/json"
STATIC_MAP_PATH = "/map/static/png"
ATLAS_SDK_URL = "https://atlas.microsoft.com/sdk/javascript/mapcontrol/2/atlas.min.js"
ATLAS_CSS_URL = "https://atlas.microsoft.com/sdk/javascript/mapcontrol/2/atlas.min.css"
API_VERSION = "1.0"

DEFAULT_ZOOM = 12
ZOOM_BY_ENTITY_TYPE = {
    "Country": 5,
    "CountrySubdivision": 7,
    "Municipality": 10,
    "PostalCodeArea": 11,
    "Neighbourhood": 14,
    "Street": 15,
    "Address": 16,
    "POI": 16,
}

STATIC_MAP_WIDTH = 800
STATIC_MAP_HEIGHT = 500


def zoom_for_entity_type(entity_type: Optional[str]) -> int:
    return ZOOM_BY_ENTITY_TYPE.get(entity_type or "", DEFAULT_ZOOM)


def parse_search_results(data: Dict[str, Any], query: str) -> Optional[Location]:
    """Maps an Azure Maps search response to a Location.

    The first result wins. A result with coordinates out of range is treated
    as no match.

    Raises:
        ValueError: If the payload has no result list or the first result has no usable position.
    """
    results = data["results"]
    if not isinstance(results, list):
        raise ValueError("'results' is not a list")
    if not results:
        logger.info(f"No geocoding result for '{query}'")
        return None

    result = results[0]
    position = result.get("position") or {}
    lon, lat = position.get("lon"), position.get("lat")
    if isinstance(lon, bool) or isinstance(lat, bool) or not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        raise ValueError(f"Invalid position data in geocoding result: {position!r}")
    if not validate_coordinates(lon, lat):
        logger.warning(f"Geocoding returned out-of-range coordinates for '{query}': {lon}, {lat}")
        return None

    address = result.get("address") or {}
    freeform = address.get("freeformAddress") or query
    country = address.get("country")
    description = f"{freeform}, {country}" if country else freeform
    try:
        return Location(
            name=freeform,
            coordinates=(lon, lat),
            zoom=zoom_for_entity_type(result.get("entityType")),
            description=description,
        )
    except InvalidLocationError as e:
        logger.warning(f"Discarding geocoding result for '{query}': {e}")
        return None


class AzureMapsGeocoder(Geocoder):
    """Geocoder backed by the Azure Maps address search API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_orchestrator: RetryOrchestrator,
        api_key: Optional[str],
        base_url: str = AZURE_MAPS_BASE_URL,
        language: str = "fr",
    ):
        self.http_client = http_client
        self.retry_orchestrator = retry_orchestrator
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.language = language

    async def geocode(self, query: str) -> Optional[Location]:
        query = query.strip()
        if not query:
            raise BadRequest("Query parameter is required", endpoint_class=GEOCODE, status_code=400)
        if not self.api_key:
            logger.error("Azure Maps API key is missing")
            raise UpstreamUnavailable("Configuration error: Azure Maps key missing", endpoint_class=GEOCODE, status_code=500)

        url = f"{self.base_url}{SEARCH_ADDRESS_PATH}"
        params = {
            "api-version": API_VERSION,
            "query": query,
            "subscription-key": self.api_key,
            "language": self.language,
        }
        logger.info(f"Geocoding request for: \"{query}\"")

        async def call() -> httpx.Response:
            return await self.http_client.get(url, params=params, headers={"Accept": "application/json"})

        return await self.retry_orchestrator.execute(
            call, GEOCODE, parse=lambda response: parse_search_results(response.json(), query)
        )


class MapAuthProvider:
    """Hands the server-held subscription key to the live map control."""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def auth_options(self) -> AuthOptions:
        if not self.api_key:
            raise UpstreamUnavailable("Map service configuration error", endpoint_class=MAP, status_code=500)
        return AuthOptions({"authType": "subscriptionKey", "subscriptionKey": self.api_key})


class AzureStaticMapProvider(StaticMapProvider):
    """First-party static map images from the Azure Maps render API."""

    source = "azure-maps"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_orchestrator: RetryOrchestrator,
        api_key: Optional[str],
        base_url: str = AZURE_MAPS_BASE_URL,
    ):
        self.http_client = http_client
        self.retry_orchestrator = retry_orchestrator
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def build_url(self, location: Location) -> str:
        params = {
            "api-version": API_VERSION,
            "layer": "basic",
            "style": "main",
            "zoom": location.zoom,
            "center": f"{location.longitude},{location.latitude}",
            "width": STATIC_MAP_WIDTH,
            "height": STATIC_MAP_HEIGHT,
            "subscription-key": self.api_key or "",
        }
        return str(httpx.URL(f"{self.base_url}{STATIC_MAP_PATH}", params=params))

    async def fetch(self, location: Location) -> StaticMapImage:
        if not validate_coordinates(location.longitude, location.latitude):
            raise BadRequest("Invalid coordinates", endpoint_class=STATIC_MAP, status_code=400)
        if not validate_zoom(location.zoom):
            raise BadRequest("Invalid zoom level", endpoint_class=STATIC_MAP, status_code=400)
        if not self.api_key:
            raise UpstreamUnavailable("Map service configuration error", endpoint_class=STATIC_MAP, status_code=500)

        url = self.build_url(location)
        logger.debug(f"Fetching static map: {redact_url(url)}")

        async def call() -> httpx.Response:
            return await self.http_client.get(url)

        return await self.retry_orchestrator.execute(
            call, STATIC_MAP, parse=lambda response: image_from_response(response, url, self.source)
        )


def image_from_response(response: httpx.Response, url: str, source: str) -> StaticMapImage:
    media_type = response.headers.get("content-type", "").split(";")[0].strip()
    if not media_type.startswith("image/"):
        raise ValueError(f"Expected an image, got '{media_type or 'no content type'}'")
    if not response.content:
        raise ValueError("Empty image body")
    return StaticMapImage(url=url, content=response.content, media_type=media_type, source=source)


class AtlasLiveMapLoader(LiveMapLoader):
    """Prepares the Azure Maps web control: checks the SDK is reachable and fetches auth."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_orchestrator: RetryOrchestrator,
        auth_provider: MapAuthProvider,
        sdk_url: str = ATLAS_SDK_URL,
    ):
        self.http_client = http_client
        self.retry_orchestrator = retry_orchestrator
        self.auth_provider = auth_provider
        self.sdk_url = sdk_url

    async def load(self, location: Location) -> LiveMap:
        auth_options = self.auth_provider.auth_options()

        async def call() -> httpx.Response:
            return await self.http_client.get(self.sdk_url)

        def check_sdk(response: httpx.Response) -> str:
            if not response.content:
                raise ValueError("Map SDK script is empty")
            return self.sdk_url

        sdk_url = await self.retry_orchestrator.execute(call, MAP, parse=check_sdk)
        logger.info(f"Live map ready for {location.name} at {location.coordinates}, zoom {location.zoom}")
        return LiveMap(location=location, auth_options=auth_options, sdk_url=sdk_url)


LIVE_MAP_PAGE = """<!DOCTYPE html>
<html lang="fr">
<head>
<meta charset="utf-8">
<title>{title}</title>
<link rel="stylesheet" href="{css_url}">
<script src="{sdk_url}"></script>
<style>html, body, #map {{ margin: 0; width: 100%; height: 100%; }}</style>
</head>
<body>
<div id="map"></div>
<script>
const options = {options};
const map = new atlas.Map("map", options);
map.events.add("ready", () => {{
  map.markers.add(new atlas.HtmlMarker({{ position: options.center }}));
}});
</script>
</body>
</html>
"""


def render_live_map_html(live_map: LiveMap) -> str:
    """Renders a standalone HTML page hosting the Azure Maps control for `live_map`."""
    options = {
        "center": list(live_map.center),
        "zoom": live_map.location.zoom,
        "authOptions": dict(live_map.auth_options),
        "showFeedbackLink": False,
        "showLogo": False,
    }
    return LIVE_MAP_PAGE.format(
        title=live_map.location.name.replace("<", "&lt;"),
        css_url=ATLAS_CSS_URL,
        sdk_url=live_map.sdk_url,
        options=json.dumps(options).replace("</", "<\\/"),
    )
