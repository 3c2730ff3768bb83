"""
Geocoder — Reverse geocoding via the Geoapify API.

Used by the heatmap to bucket a reaction's location into a city.

Graceful degradation: if GEOAPIFY_API_KEY is not set, every lookup
returns None with a logged warning at construction. Network errors,
bad status codes and unexpected payloads also return None — a failed
lookup only means "no heatmap bucket", never an error for the caller.

To swap to a different provider (Nominatim, Mapbox):
  1. Implement the same `resolve_region()` interface
  2. Return it from rendezvous.dependencies.get_geocoder
"""

import logging
from typing import Optional

import httpx

from rendezvous.core.config import settings
from rendezvous.models.geo import Location

logger = logging.getLogger(__name__)

REVERSE_PATH = "/v1/geocode/reverse"


class Geocoder:
    """Thin async wrapper around Geoapify reverse geocoding."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.geoapify_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.geoapify_base_url).rstrip("/")
        self.timeout = timeout or settings.geocoding_timeout_seconds
        self._transport = transport
        self.enabled = bool(self.api_key)

        if not self.enabled:
            logger.warning(
                "GEOAPIFY_API_KEY not set — reverse geocoding disabled. "
                "Reactions will be stored but not added to the heatmap."
            )

    async def resolve_region(self, location: Location) -> Optional[str]:
        """
        Return the city containing *location*, or None if it can't be resolved.
        """
        if not self.enabled:
            return None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}{REVERSE_PATH}",
                    params={"lat": location.lat, "lon": location.lng, "apiKey": self.api_key},
                )
                response.raise_for_status()
                features = response.json().get("features") or []
                if not features:
                    return None
                return features[0].get("properties", {}).get("city")

            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Geoapify API error: %s — %s",
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                return None
            except Exception as exc:
                logger.error("Geoapify request failed: %s", exc)
                return None
