"""
heatmap.py — Time-decayed sentiment scores per post and per region.

Every reaction change moves two scores by the change in sentiment:
the reacted post's own score and the score of the region the post sits
in. Scores are stored once and decayed at read time:

    effective = stored * exp(-λ * elapsed_ms),   λ = ln 2 / half_life_ms

so a reaction's influence halves every half-life and newer reactions
dominate older ones without any periodic sweep.

Writing a delta decays the stored value up to "now" first, then adds
the delta. That read-modify-write is guarded by an optimistic
compare-and-swap on a `version` field; after `max_retries` lost races
the update fails with ConcurrentUpdateError. The reaction change that
caused it is then rolled back, so stored reactions and scores agree.

Region bucketing
────────────────
Only the SUPPORTED_REGIONS take part. A location the geocoder cannot
resolve, or one that resolves elsewhere, is simply left off the
heatmap — the reaction itself still counts.

Document shape (collection `heat_scores`):

    { "kind": "item" | "region", "key": "<post id | city>",
      "score": 4.2, "at": ISODate(...), "version": 7 }
"""

import logging
import math
from datetime import datetime
from typing import Callable, NamedTuple, Optional

from pymongo.errors import DuplicateKeyError

from rendezvous.core.config import settings
from rendezvous.core.errors import ConcurrentUpdateError
from rendezvous.core.store import DocCollection, utcnow
from rendezvous.models.geo import Location
from rendezvous.models.reaction import ReactionChoice
from rendezvous.services.geocoding import Geocoder
from rendezvous.services.reactions import ReactionStore

logger = logging.getLogger(__name__)

ITEM = "item"
REGION = "region"

# Cities around Cambridge, MA
SUPPORTED_REGIONS = frozenset({
    "Cambridge", "Somerville", "Boston", "Brookline",
    "Medford", "Watertown", "Everett", "Arlington",
    "Belmont", "Chelsea", "Malden", "Revere",
    "Winchester", "Newton", "Winthrop", "Melrose",
})

_MS_PER_HOUR = 3_600_000


def decay_rate(half_life_hours: float) -> float:
    """λ (per millisecond) for the given half-life."""
    return math.log(2) / (half_life_hours * _MS_PER_HOUR)


class ScoreEntry(NamedTuple):
    key: str
    score: float
    updated_at: datetime


class DecayedScores:
    def __init__(
        self,
        db,
        half_life_hours: Optional[float] = None,
        max_retries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.scores = DocCollection(db, "heat_scores")
        self.half_life_hours = half_life_hours or settings.heatmap_half_life_hours
        self.rate = decay_rate(self.half_life_hours)
        self.max_retries = max_retries or settings.heatmap_max_retries
        self.clock = clock

    def effective(self, doc: dict, now: datetime) -> float:
        elapsed_ms = max(0.0, (now - doc["at"]).total_seconds() * 1000)
        return doc["score"] * math.exp(-self.rate * elapsed_ms)

    async def apply(self, kind: str, key: str, delta: float) -> float:
        """Add *delta* to the decayed score of (kind, key). Returns the new score."""
        for _ in range(self.max_retries):
            now = self.clock()
            doc = await self.scores.read_one({"kind": kind, "key": key})
            if doc is None:
                try:
                    await self.scores.create_one(
                        {"kind": kind, "key": key, "score": float(delta), "at": now, "version": 1}
                    )
                    return float(delta)
                except DuplicateKeyError:
                    continue

            score = self.effective(doc, now) + delta
            matched = await self.scores.update_one_with_operators(
                {"_id": doc["_id"], "version": doc["version"]},
                {"$set": {"score": score, "at": now}, "$inc": {"version": 1}},
            )
            if matched:
                return score

        logger.warning("Gave up updating %s score %s after %d attempts", kind, key, self.max_retries)
        raise ConcurrentUpdateError(key=f"{kind}:{key}")

    async def read(self, kind: str, key: str) -> float:
        doc = await self.scores.read_one({"kind": kind, "key": key})
        return self.effective(doc, self.clock()) if doc else 0.0

    async def read_all(self, kind: str) -> list[ScoreEntry]:
        now = self.clock()
        docs = await self.scores.read_many({"kind": kind}, sort=[("key", 1)])
        return [ScoreEntry(d["key"], self.effective(d, now), d["at"]) for d in docs]


class ReactOutcome(NamedTuple):
    item_score: float
    region: Optional[str]


class SentimentHeatmap:
    def __init__(self, reactions: ReactionStore, scores: DecayedScores, geocoder: Geocoder) -> None:
        self.reactions = reactions
        self.scores = scores
        self.geocoder = geocoder

    async def resolve_region(self, location: Optional[Location]) -> Optional[str]:
        if location is None:
            return None
        region = await self.geocoder.resolve_region(location)
        if region not in SUPPORTED_REGIONS:
            logger.debug("No heatmap bucket for %s (resolved: %s)", location, region)
            return None
        return region

    async def react(
        self,
        target: str,
        reactor: str,
        choice: ReactionChoice,
        location: Optional[Location] = None,
    ) -> ReactOutcome:
        previous = await self.reactions.react(target, reactor, choice)
        delta = choice.sentiment - (previous.sentiment if previous else 0)
        try:
            return await self._shift(target, delta, location)
        except ConcurrentUpdateError:
            await self.reactions.revert(target, reactor, choice, previous)
            raise

    async def unreact(self, target: str, reactor: str, location: Optional[Location] = None) -> ReactOutcome:
        removed = await self.reactions.unreact(target, reactor)
        try:
            return await self._shift(target, -removed.sentiment, location)
        except ConcurrentUpdateError:
            await self.reactions.revert(target, reactor, None, removed)
            raise

    async def _shift(self, target: str, delta: int, location: Optional[Location]) -> ReactOutcome:
        """Move the item and region scores together; neither moves if either update fails."""
        region = await self.resolve_region(location)
        if not delta:
            return ReactOutcome(await self.scores.read(ITEM, target), region)

        item_score = await self.scores.apply(ITEM, target, delta)
        if region is not None:
            try:
                await self.scores.apply(REGION, region, delta)
            except ConcurrentUpdateError:
                await self.scores.apply(ITEM, target, -delta)
                raise
        return ReactOutcome(item_score, region)

    async def item_score(self, target: str) -> float:
        return await self.scores.read(ITEM, target)

    async def region_scores(self) -> list[ScoreEntry]:
        return await self.scores.read_all(REGION)
