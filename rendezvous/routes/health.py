"""
health.py — Liveness endpoint.

Routes:
  GET /health  — process liveness plus the state of the two outside
                 dependencies: MongoDB and the reverse geocoder

Always 200 while the process is up. A disconnected database means every
domain route answers 503; a disabled geocoder only means reactions stop
feeding the heatmap regions.
"""

import logging

from fastapi import Depends
from pydantic import BaseModel

from rendezvous.core import database as db_module
from rendezvous.core.config import settings
from rendezvous.core.routing import Route, build_router
from rendezvous.dependencies import get_geocoder
from rendezvous.services.geocoding import Geocoder

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str      # "ok" whenever the process answers
    version: str
    database: str    # "connected" | "disconnected"
    geocoding: str   # "enabled" | "disabled"
    environment: str


async def _database_status() -> str:
    # Module reference, so tests can swap db_module.db_client
    client = db_module.db_client.client
    if client is None:
        return "disconnected"
    try:
        await client.admin.command("ping")
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)
        return "disconnected"
    return "connected"


async def health_check(geocoder: Geocoder = Depends(get_geocoder)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=VERSION,
        database=await _database_status(),
        geocoding="enabled" if getattr(geocoder, "enabled", True) else "disabled",
        environment=settings.environment,
    )


ROUTES = [
    Route("GET", "", health_check, response_model=HealthResponse),
]

router = build_router("/health", ["health"], ROUTES)
