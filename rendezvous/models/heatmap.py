"""
heatmap.py — Pydantic models for the sentiment heatmap.

Each region bucket carries one decayed score. `score` is the value at
read time (stored score decayed by the time since `updated_at`); the
stored value itself never leaves the service.
"""

from datetime import datetime

from pydantic import BaseModel


class RegionScore(BaseModel):
    """Sentiment for one supported region."""

    region: str
    score: float
    updated_at: datetime


class HeatmapResponse(BaseModel):
    """Snapshot returned by GET /api/v1/heatmap."""

    regions: list[RegionScore]
    half_life_hours: float
    generated_at: datetime
