"""
geo.py — Location schema and query helpers.

Location is the boundary type for every coordinate entering the system:
out-of-range values fail pydantic validation (422 at the API) and are
never stored.
"""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from rendezvous.core.errors import BadValuesError, InvalidLocationError


class Location(BaseModel):
    """Lat/lng in degrees."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @classmethod
    def checked(cls, lat: float, lng: float) -> "Location":
        """Build a Location from raw numbers, raising InvalidLocationError when out of range."""
        try:
            return cls(lat=lat, lng=lng)
        except ValidationError:
            raise InvalidLocationError(lat=lat, lng=lng)

    def __add__(self, other: "Location") -> "Location":
        # Componentwise sum, range-checked.
        return Location.checked(self.lat + other.lat, self.lng + other.lng)


def anchor_from_query(lat: Optional[float], lng: Optional[float]) -> Optional[Location]:
    """Optional lat/lng query parameters → Location; both or neither must be given."""
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        raise BadValuesError(reason="lat and lng must be given together")
    return Location.checked(lat, lng)
