"""
dependencies.py — FastAPI dependencies that compose the services.

Services are plain classes built per request from the database handle
and from each other; nothing here is a service singleton. The only
long-lived object is the Geocoder (it holds no state beyond settings).

Tests swap collaborators with app.dependency_overrides, e.g.

    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_geocoder] = lambda: StubGeocoder("Cambridge")
"""

from functools import lru_cache

from fastapi import Depends, HTTPException

from rendezvous.core.database import get_db
from rendezvous.services.collaboration import CollaborationService
from rendezvous.services.content import ContentStore
from rendezvous.services.geo_index import GeoIndex
from rendezvous.services.geocoding import Geocoder
from rendezvous.services.heatmap import DecayedScores, SentimentHeatmap
from rendezvous.services.meetings import MeetingCoordinator
from rendezvous.services.reactions import ReactionStore


def require_db(db=Depends(get_db)):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return db


@lru_cache
def get_geocoder() -> Geocoder:
    return Geocoder()


def get_geo_index(db=Depends(require_db)) -> GeoIndex:
    return GeoIndex(db)


def get_meetings(db=Depends(require_db), geo: GeoIndex = Depends(get_geo_index)) -> MeetingCoordinator:
    return MeetingCoordinator(db, geo)


def get_collaborations(db=Depends(require_db)) -> CollaborationService:
    return CollaborationService(db)


def get_content(db=Depends(require_db)) -> ContentStore:
    return ContentStore(db)


def get_heatmap(db=Depends(require_db), geocoder: Geocoder = Depends(get_geocoder)) -> SentimentHeatmap:
    return SentimentHeatmap(ReactionStore(db), DecayedScores(db), geocoder)
