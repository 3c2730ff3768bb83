"""
geo_index.py — Points of interest on named map layers.

A layer ("posts", "meeting_requests") is an independent namespace of
markers, each pinning one subject id (the poi) to a location. All layers
share the `markers` collection and are separated by the `layer` field.

Nearest-neighbour lookups are done in process: the layer is read in
recency order, then stably re-sorted by great-circle distance from the
anchor, so equidistant markers keep their recency order.

USAGE
─────
    index = GeoIndex(db)
    await index.add(POSTS_LAYER, post_id, Location(lat=42.36, lng=-71.09))
    nearest = await index.find_nearby(POSTS_LAYER, limit=5, anchor=here)
"""

import logging
import math
from typing import Optional

from rendezvous.core.errors import BadValuesError
from rendezvous.core.store import RECENT_FIRST, DocCollection
from rendezvous.models.geo import Location

logger = logging.getLogger(__name__)

POSTS_LAYER = "posts"
MEETING_REQUESTS_LAYER = "meeting_requests"

EARTH_RADIUS_M = 6_371_000


def haversine_m(a: Location, b: Location) -> float:
    """Great-circle distance in metres between two locations (spherical Earth)."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlam = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def marker_location(marker: dict) -> Location:
    return Location(**marker["location"])


class GeoIndex:
    def __init__(self, db) -> None:
        self.markers = DocCollection(db, "markers")

    async def add(self, layer: str, poi, location: Location):
        """Pin *poi* to *location* on *layer*. Returns the marker id."""
        marker_id = await self.markers.create_one(
            {"layer": layer, "poi": poi, "location": location.model_dump()}
        )
        logger.debug("Marker %s added to layer %s for %s", marker_id, layer, poi)
        return marker_id

    async def remove(self, layer: str, poi) -> int:
        """Remove the poi's markers from the layer. Removing nothing is fine."""
        return await self.markers.delete_many({"layer": layer, "poi": poi})

    async def query(self, layer: str, poi_filter: Optional[dict] = None) -> list[dict]:
        """Markers on *layer* matching *poi_filter*, most recently updated first."""
        return await self.markers.read_many({**(poi_filter or {}), "layer": layer}, sort=RECENT_FIRST)

    async def find_nearby(
        self,
        layer: str,
        poi_filter: Optional[dict] = None,
        limit: int = 10,
        anchor: Optional[Location] = None,
    ) -> list[dict]:
        """
        Up to *limit* markers, closest to *anchor* first.

        Without an anchor the recency order from query() is kept.
        """
        if limit < 0:
            raise BadValuesError(reason=f"limit must be >= 0, got {limit}")

        markers = await self.query(layer, poi_filter)
        if anchor is not None:
            # list.sort is stable: distance ties keep recency order
            markers.sort(key=lambda m: haversine_m(anchor, marker_location(m)))
        return markers[:limit]

    async def locate(self, layer: str, poi) -> Optional[Location]:
        """Location of the poi's most recent marker on the layer, if any."""
        marker = await self.markers.read_one({"layer": layer, "poi": poi}, sort=RECENT_FIRST)
        return marker_location(marker) if marker else None
