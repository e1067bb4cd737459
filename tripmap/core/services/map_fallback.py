"""Map fallback chain: always produce some map for a location.

Tiers are tried in order and a render only ever moves forward:
LIVE_MAP, FIRST_PARTY_STATIC, THIRD_PARTY_STATIC, PLACEHOLDER. A missing or
invalid location goes straight to the placeholder. Nothing is remembered
between renders; the per-class circuits carry any longer-lived state.
"""

import logging
from typing import Any, Dict, Optional

from tripmap.core.exceptions import RateLimited
from tripmap.domain.events.api_events import EventSink, MapTierDegraded
from tripmap.domain.interfaces.map_provider import LiveMapLoader, StaticMapProvider
from tripmap.domain.models.common import MAP
from tripmap.domain.models.location import InvalidLocationError, Location
from tripmap.domain.models.map import FallbackTier, MapRender
from tripmap.infrastructure.resilience.cooldown import CooldownTracker

logger = logging.getLogger(__name__)

RATE_LIMITED_NOTICE = "Service de carte temporairement indisponible (trop de requêtes)"
UNAVAILABLE_NOTICE = "Carte non disponible"


class MapFallbackChain:
    """Renders a location on the best map tier currently available."""

    def __init__(
        self,
        first_party: Optional[StaticMapProvider],
        third_party: Optional[StaticMapProvider],
        live_loader: Optional[LiveMapLoader] = None,
        cooldown: Optional[CooldownTracker] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the chain.

        Args:
            first_party: Static map source with the server-held credential.
            third_party: Credential-free static map source.
            live_loader: Interactive map loader; None starts renders at the first static tier.
            cooldown: Consulted to skip the live tier while the 'map' circuit is open.
            event_sink: Receives MapTierDegraded events (default: debug log).
        """
        self.first_party = first_party
        self.third_party = third_party
        self.live_loader = live_loader
        self.cooldown = cooldown
        self._event_sink = event_sink

    def _degrade(self, from_tier: FallbackTier, to_tier: FallbackTier, reason: str,
                 location: Optional[Location]) -> None:
        event = MapTierDegraded(
            from_tier=from_tier.name,
            to_tier=to_tier.name,
            reason=reason,
            location_name=location.name if location else None,
        )
        logger.info(f"Map render degraded from {from_tier.name} to {to_tier.name}: {reason}")
        logger.debug(f"EVENT: {event}")
        if self._event_sink:
            self._event_sink(event)

    def _placeholder(self, location: Optional[Location], rate_limited: bool) -> MapRender:
        return MapRender(
            tier=FallbackTier.PLACEHOLDER,
            location=location,
            notice=RATE_LIMITED_NOTICE if rate_limited else UNAVAILABLE_NOTICE,
            rate_limited=rate_limited,
        )

    async def render(self, location: Optional[Location]) -> MapRender:
        """Renders `location`; never raises."""
        if location is None:
            logger.info("No location to render, showing the placeholder.")
            return self._placeholder(None, rate_limited=False)

        rate_limited = False

        # 1. Live map
        if self.live_loader is not None:
            if self.cooldown is not None and self.cooldown.is_open(MAP):
                rate_limited = True
                self._degrade(FallbackTier.LIVE_MAP, FallbackTier.FIRST_PARTY_STATIC, "circuit open", location)
            else:
                try:
                    live_map = await self.live_loader.load(location)
                    return MapRender(tier=FallbackTier.LIVE_MAP, location=location, live_map=live_map)
                except RateLimited as e:
                    rate_limited = True
                    self._degrade(FallbackTier.LIVE_MAP, FallbackTier.FIRST_PARTY_STATIC, str(e), location)
                except Exception as e:
                    logger.warning(f"Live map failed for {location.name}: {e}")
                    self._degrade(FallbackTier.LIVE_MAP, FallbackTier.FIRST_PARTY_STATIC, str(e), location)

        # 2. and 3. Static images, first party then third party
        tiers = (
            (FallbackTier.FIRST_PARTY_STATIC, self.first_party),
            (FallbackTier.THIRD_PARTY_STATIC, self.third_party),
        )
        for tier, provider in tiers:
            next_tier = FallbackTier(tier + 1)
            if provider is None:
                continue
            try:
                image = await provider.fetch(location)
                return MapRender(tier=tier, location=location, image=image, rate_limited=rate_limited)
            except RateLimited as e:
                rate_limited = True
                self._degrade(tier, next_tier, str(e), location)
            except Exception as e:
                logger.warning(f"Static map from {provider.source} failed for {location.name}: {e}")
                self._degrade(tier, next_tier, str(e), location)

        # 4. Placeholder
        return self._placeholder(location, rate_limited)

    async def render_payload(self, payload: Optional[Dict[str, Any]]) -> MapRender:
        """Renders a location given in its JSON shape.

        Invalid coordinates or zoom never reach a network tier.
        """
        if payload is None:
            return await self.render(None)
        try:
            location = Location.from_payload(payload)
        except InvalidLocationError as e:
            logger.warning(f"Refusing to render invalid location: {e}")
            return self._placeholder(None, rate_limited=False)
        return await self.render(location)
