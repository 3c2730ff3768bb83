"""
heatmap.py — Sentiment heatmap route.

Routes:
  GET /api/v1/heatmap  — decayed sentiment score of every region that has one

Scores are computed at read time, so two reads a few hours apart return
smaller magnitudes for the same regions unless new reactions came in.
Regions nobody reacted in are omitted rather than reported as 0.

TESTING YOUR CHANGES
─────────────────────
  pytest tests/test_heatmap.py -v
  curl http://localhost:8000/api/v1/heatmap
"""

from fastapi import Depends

from rendezvous.core.routing import Route, build_router
from rendezvous.core.store import utcnow
from rendezvous.dependencies import get_heatmap
from rendezvous.models.heatmap import HeatmapResponse, RegionScore
from rendezvous.services.heatmap import SentimentHeatmap


async def get_heatmap_snapshot(heatmap: SentimentHeatmap = Depends(get_heatmap)):
    entries = await heatmap.region_scores()
    return HeatmapResponse(
        regions=[RegionScore(region=e.key, score=e.score, updated_at=e.updated_at) for e in entries],
        half_life_hours=heatmap.scores.half_life_hours,
        generated_at=utcnow(),
    )


ROUTES = [
    Route("GET", "", get_heatmap_snapshot, response_model=HeatmapResponse),
]

router = build_router("/api/v1/heatmap", ["heatmap"], ROUTES)
