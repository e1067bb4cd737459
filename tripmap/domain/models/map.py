"""Domain models for map rendering and its fallback tiers."""

import enum
from dataclasses import dataclass, field
from typing import Optional

from tripmap.domain.models.common import AuthOptions
from tripmap.domain.models.location import Location


class FallbackTier(enum.IntEnum):
    """Ordered degradation path for one map render. Higher values are worse."""
    LIVE_MAP = 0
    FIRST_PARTY_STATIC = 1
    THIRD_PARTY_STATIC = 2
    PLACEHOLDER = 3


@dataclass(frozen=True)
class LiveMap:
    """Everything an interactive map control needs to show a location."""
    location: Location
    auth_options: AuthOptions
    sdk_url: str

    @property
    def center(self):
        return self.location.coordinates


@dataclass(frozen=True)
class StaticMapImage:
    """A static map image fetched from one of the static providers."""
    url: str
    content: bytes = field(repr=False)
    media_type: str
    source: str


@dataclass(frozen=True)
class MapRender:
    """Outcome of a render: exactly one tier, plus what that tier needs to be shown."""
    tier: FallbackTier
    location: Optional[Location] = None
    live_map: Optional[LiveMap] = None
    image: Optional[StaticMapImage] = None
    notice: Optional[str] = None
    rate_limited: bool = False
