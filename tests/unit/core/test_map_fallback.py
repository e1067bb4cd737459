import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from tripmap.core.exceptions import RateLimited, UpstreamUnavailable
from tripmap.core.services.map_fallback import RATE_LIMITED_NOTICE, UNAVAILABLE_NOTICE, MapFallbackChain
from tripmap.domain.events.api_events import MapTierDegraded
from tripmap.domain.interfaces.map_provider import LiveMapLoader, StaticMapProvider
from tripmap.domain.models.location import Location
from tripmap.domain.models.map import FallbackTier, LiveMap, StaticMapImage
from tripmap.infrastructure.maps.azure_maps import AtlasLiveMapLoader, AzureStaticMapProvider, MapAuthProvider
from tripmap.infrastructure.maps.osm_static import OsmStaticMapProvider

ROME = Location(name="Rome", coordinates=(12.4964, 41.9028), zoom=12)


def make_image(source):
    return StaticMapImage(url=f"https://{source}.test/map.png", content=b"\x89PNG", media_type="image/png",
                          source=source)


@pytest.fixture
def live_loader():
    mock = MagicMock(spec=LiveMapLoader)
    mock.load.return_value = LiveMap(location=ROME, auth_options={"authType": "subscriptionKey"}, sdk_url="sdk.js")
    return mock


@pytest.fixture
def first_party():
    mock = MagicMock(spec=StaticMapProvider)
    mock.source = "azure-maps"
    mock.fetch.return_value = make_image("azure")
    return mock


@pytest.fixture
def third_party():
    mock = MagicMock(spec=StaticMapProvider)
    mock.source = "openstreetmap"
    mock.fetch.return_value = make_image("osm")
    return mock


@pytest.fixture
def chain(first_party, third_party, live_loader, cooldown, events):
    return MapFallbackChain(first_party, third_party, live_loader=live_loader, cooldown=cooldown,
                            event_sink=events.append)


def test_live_map_is_preferred(chain, live_loader, first_party):
    render = asyncio.run(chain.render(ROME))

    assert render.tier is FallbackTier.LIVE_MAP
    assert render.live_map.center == ROME.coordinates
    first_party.fetch.assert_not_called()


def test_live_failure_drops_to_first_party_static(chain, live_loader, third_party, events):
    live_loader.load.side_effect = UpstreamUnavailable("sdk down")

    render = asyncio.run(chain.render(ROME))

    assert render.tier is FallbackTier.FIRST_PARTY_STATIC
    assert render.image.source == "azure"
    assert not render.rate_limited
    third_party.fetch.assert_not_called()
    assert [(e.from_tier, e.to_tier) for e in events] == [("LIVE_MAP", "FIRST_PARTY_STATIC")]


def test_rate_limited_first_party_drops_to_third_party(chain, live_loader, first_party):
    live_loader.load.side_effect = RuntimeError("script failed")
    first_party.fetch.side_effect = RateLimited("429")

    render = asyncio.run(chain.render(ROME))

    assert render.tier is FallbackTier.THIRD_PARTY_STATIC
    assert render.image.source == "osm"
    assert render.rate_limited


def test_every_source_failing_gives_placeholder(chain, live_loader, first_party, third_party, events):
    live_loader.load.side_effect = UpstreamUnavailable("down")
    first_party.fetch.side_effect = UpstreamUnavailable("down")
    third_party.fetch.side_effect = UpstreamUnavailable("down")

    render = asyncio.run(chain.render(ROME))

    assert render.tier is FallbackTier.PLACEHOLDER
    assert render.location == ROME
    assert render.notice == UNAVAILABLE_NOTICE
    tiers = [e.to_tier for e in events if isinstance(e, MapTierDegraded)]
    assert tiers == ["FIRST_PARTY_STATIC", "THIRD_PARTY_STATIC", "PLACEHOLDER"]


def test_placeholder_notice_mentions_rate_limiting(chain, live_loader, first_party, third_party):
    live_loader.load.side_effect = RateLimited("429")
    first_party.fetch.side_effect = RateLimited("429")
    third_party.fetch.side_effect = UpstreamUnavailable("down")

    render = asyncio.run(chain.render(ROME))

    assert render.tier is FallbackTier.PLACEHOLDER
    assert render.notice == RATE_LIMITED_NOTICE
    assert render.rate_limited


def test_open_map_circuit_skips_live_tier(chain, live_loader, cooldown):
    cooldown.trip("map")

    render = asyncio.run(chain.render(ROME))

    live_loader.load.assert_not_called()
    assert render.tier is FallbackTier.FIRST_PARTY_STATIC


def test_without_live_loader_starts_at_static(first_party, third_party):
    chain = MapFallbackChain(first_party, third_party)

    render = asyncio.run(chain.render(ROME))

    assert render.tier is FallbackTier.FIRST_PARTY_STATIC


def test_missing_location_is_placeholder(chain, live_loader, first_party, third_party):
    render = asyncio.run(chain.render(None))

    assert render.tier is FallbackTier.PLACEHOLDER
    assert render.location is None
    live_loader.load.assert_not_called()
    first_party.fetch.assert_not_called()
    third_party.fetch.assert_not_called()


def test_invalid_coordinates_never_reach_network_tiers(chain, live_loader, first_party, third_party):
    render = asyncio.run(chain.render_payload({"name": "Nowhere", "coordinates": [200, 48.8], "zoom": 10}))

    assert render.tier is FallbackTier.PLACEHOLDER
    live_loader.load.assert_not_called()
    first_party.fetch.assert_not_called()
    third_party.fetch.assert_not_called()


def test_valid_payload_is_rendered(chain):
    render = asyncio.run(chain.render_payload(ROME.to_payload()))

    assert render.tier is FallbackTier.LIVE_MAP
    assert render.location == ROME


def test_each_render_starts_from_the_top(chain, live_loader):
    live_loader.load.side_effect = [UpstreamUnavailable("blip"), live_loader.load.return_value]

    first = asyncio.run(chain.render(ROME))
    second = asyncio.run(chain.render(ROME))

    assert first.tier is FallbackTier.FIRST_PARTY_STATIC
    assert second.tier is FallbackTier.LIVE_MAP


class MapUpstream:
    """Answers the Azure Maps SDK, Azure static and OpenStreetMap requests; SDK status is settable."""

    def __init__(self, sdk_status=200):
        self.sdk_status = sdk_status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path.endswith("atlas.min.js"):
            return httpx.Response(self.sdk_status, content=b"var atlas = {};")
        return httpx.Response(200, content=b"\x89PNG-" + request.url.host.encode(), headers={"content-type": "image/png"})

    def hosts_and_paths(self):
        return [(request.url.host, request.url.path) for request in self.requests]


def render_with_real_providers(upstream, orchestrator, cooldown, location):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
            chain = MapFallbackChain(
                AzureStaticMapProvider(client, orchestrator, "maps-key"),
                OsmStaticMapProvider(client, orchestrator),
                live_loader=AtlasLiveMapLoader(client, orchestrator, MapAuthProvider("maps-key")),
                cooldown=cooldown,
            )
            return await chain.render(location)

    return asyncio.run(scenario())


def test_open_map_circuit_still_reaches_first_party_static(orchestrator, cooldown):
    upstream = MapUpstream()
    cooldown.trip("map")

    render = render_with_real_providers(upstream, orchestrator, cooldown, ROME)

    assert render.tier is FallbackTier.FIRST_PARTY_STATIC
    assert render.rate_limited
    assert render.image.source == "azure-maps"
    assert upstream.hosts_and_paths() == [("atlas.microsoft.com", "/map/static/png")]


def test_rate_limited_sdk_drops_to_first_party_static(orchestrator, cooldown):
    upstream = MapUpstream(sdk_status=429)

    render = render_with_real_providers(upstream, orchestrator, cooldown, ROME)

    assert render.tier is FallbackTier.FIRST_PARTY_STATIC
    assert render.rate_limited
    assert cooldown.is_open("map")
    assert not cooldown.is_open("static_map")
    assert ("atlas.microsoft.com", "/map/static/png") in upstream.hosts_and_paths()
    assert all(host != "staticmap.openstreetmap.de" for host, _ in upstream.hosts_and_paths())
