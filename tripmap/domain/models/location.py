"""Location value object.

A `Location` is immutable and always valid: coordinates are finite and in
range, zoom is an integer between 1 and 20. Invalid values are rejected at
construction so nothing downstream has to re-check them.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

MIN_ZOOM = 1
MAX_ZOOM = 20


class InvalidLocationError(ValueError):
    """Raised when a Location is built from unusable coordinates or zoom."""


def validate_coordinates(longitude: Any, latitude: Any) -> bool:
    """Returns True if (longitude, latitude) are finite numbers within range."""
    for value in (longitude, latitude):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return -180 <= longitude <= 180 and -90 <= latitude <= 90


def validate_zoom(zoom: Any) -> bool:
    """Returns True if zoom is an integer between MIN_ZOOM and MAX_ZOOM."""
    if isinstance(zoom, bool) or not isinstance(zoom, int):
        return False
    return MIN_ZOOM <= zoom <= MAX_ZOOM


@dataclass(frozen=True)
class Location:
    """A named place with (longitude, latitude) coordinates and a zoom level."""
    name: str
    coordinates: Tuple[float, float]
    zoom: int
    description: Optional[str] = None

    def __post_init__(self) -> None:
        try:
            longitude, latitude = self.coordinates
        except (TypeError, ValueError) as e:
            raise InvalidLocationError(f"Coordinates must be a (longitude, latitude) pair: {self.coordinates!r}") from e
        if not validate_coordinates(longitude, latitude):
            raise InvalidLocationError(f"Invalid coordinates: {longitude}, {latitude}")
        if not validate_zoom(self.zoom):
            raise InvalidLocationError(f"Invalid zoom level: {self.zoom!r}")
        # Normalise lists coming from JSON into an immutable tuple of floats
        object.__setattr__(self, "coordinates", (float(longitude), float(latitude)))

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Location":
        """Builds a Location from its JSON shape.

        Args:
            payload: {'name': str, 'coordinates': [lon, lat], 'zoom': int, 'description'?: str}

        Raises:
            InvalidLocationError: If a field is missing or out of range.
        """
        if not isinstance(payload, dict):
            raise InvalidLocationError(f"Location payload must be an object, got {type(payload).__name__}")
        try:
            return cls(
                name=str(payload["name"]),
                coordinates=tuple(payload["coordinates"]),
                zoom=payload.get("zoom", 10),
                description=payload.get("description"),
            )
        except (KeyError, TypeError) as e:
            raise InvalidLocationError(f"Malformed location payload: {e}") from e

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "coordinates": [self.longitude, self.latitude],
            "zoom": self.zoom,
        }
        if self.description is not None:
            payload["description"] = self.description
        return payload
