"""
test_heatmap.py — Unit tests for reactions and the decayed sentiment heatmap.

Time is injected through FakeClock so decay can be checked without
sleeping.

Run:
    pytest tests/test_heatmap.py -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from conftest import StubGeocoder
from rendezvous.core.errors import ConcurrentUpdateError, ReactionNotFoundError
from rendezvous.models.geo import Location
from rendezvous.models.reaction import CHOICE_TO_SENTIMENT, ReactionChoice
from rendezvous.services.heatmap import (
    ITEM,
    REGION,
    SUPPORTED_REGIONS,
    DecayedScores,
    SentimentHeatmap,
    decay_rate,
)
from rendezvous.services.reactions import ReactionStore

SOMEWHERE = Location(lat=42.3736, lng=-71.1097)


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, hours: float) -> None:
        self.now += timedelta(hours=hours)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scores(fake_db, clock):
    return DecayedScores(fake_db, half_life_hours=24, clock=clock)


@pytest.fixture()
def heatmap(fake_db, scores):
    return SentimentHeatmap(ReactionStore(fake_db), scores, StubGeocoder("Cambridge"))


# ── Vocabulary ───────────────────────────────────────────────────────────────

class TestVocabulary:

    def test_symmetric_around_zero(self):
        assert sum(CHOICE_TO_SENTIMENT.values()) == 0
        assert 0 not in CHOICE_TO_SENTIMENT.values()

    def test_ordering(self):
        order = ["heart", "like", "check", "question", "sad", "angry"]
        values = [ReactionChoice(c).sentiment for c in order]
        assert values == sorted(values, reverse=True)

    def test_every_choice_mapped(self):
        assert set(CHOICE_TO_SENTIMENT) == set(ReactionChoice)


# ── DecayedScores ────────────────────────────────────────────────────────────

class TestDecay:

    def test_decay_rate(self):
        assert decay_rate(1) == pytest.approx(0.6931471805599453 / 3_600_000)

    async def test_halves_every_half_life(self, scores, clock):
        await scores.apply(ITEM, "a", 4)
        clock.advance(24)
        assert await scores.read(ITEM, "a") == pytest.approx(2)
        clock.advance(24)
        assert await scores.read(ITEM, "a") == pytest.approx(1)

    async def test_never_grows_with_age(self, scores, clock):
        await scores.apply(ITEM, "pos", 3)
        await scores.apply(ITEM, "neg", -3)

        previous_pos, previous_neg = 3.0, 3.0
        for _ in range(10):
            clock.advance(5)
            pos = await scores.read(ITEM, "pos")
            neg = abs(await scores.read(ITEM, "neg"))
            assert pos <= previous_pos
            assert neg <= previous_neg
            previous_pos, previous_neg = pos, neg

    async def test_newer_reaction_weighs_more(self, scores, clock):
        await scores.apply(ITEM, "older", 3)
        clock.advance(1)
        await scores.apply(ITEM, "newer", 3)
        clock.advance(4)
        assert await scores.read(ITEM, "older") < await scores.read(ITEM, "newer")

    async def test_apply_decays_before_adding(self, scores, clock):
        await scores.apply(ITEM, "a", 2)
        clock.advance(24)
        assert await scores.apply(ITEM, "a", 2) == pytest.approx(3)

    async def test_unknown_key_reads_zero(self, scores):
        assert await scores.read(ITEM, "nothing") == 0.0

    async def test_read_all_sorted_by_key(self, scores):
        await scores.apply(REGION, "Somerville", 1)
        await scores.apply(REGION, "Boston", 2)
        await scores.apply(ITEM, "post", 5)

        entries = await scores.read_all(REGION)
        assert [e.key for e in entries] == ["Boston", "Somerville"]
        assert [e.score for e in entries] == [2, 1]

    async def test_gives_up_after_lost_races(self, scores):
        await scores.apply(ITEM, "a", 1)
        scores.max_retries = 3
        scores.scores.update_one_with_operators = AsyncMock(return_value=0)

        with pytest.raises(ConcurrentUpdateError):
            await scores.apply(ITEM, "a", 1)
        assert scores.scores.update_one_with_operators.await_count == 3


# ── SentimentHeatmap ─────────────────────────────────────────────────────────

class TestReactions:

    async def test_react_updates_item_and_region(self, heatmap):
        outcome = await heatmap.react("p1", "alice", ReactionChoice.heart, SOMEWHERE)

        assert outcome.item_score == pytest.approx(3)
        assert outcome.region == "Cambridge"
        assert await heatmap.item_score("p1") == pytest.approx(3)
        regions = await heatmap.region_scores()
        assert [(e.key, e.score) for e in regions] == [("Cambridge", pytest.approx(3))]

    async def test_new_choice_replaces_previous(self, heatmap):
        await heatmap.react("p1", "alice", ReactionChoice.heart, SOMEWHERE)
        outcome = await heatmap.react("p1", "alice", ReactionChoice.sad, SOMEWHERE)

        reactions = await heatmap.reactions.get_reactions("p1")
        assert [(r["by"], r["choice"]) for r in reactions] == [("alice", "sad")]
        assert outcome.item_score == pytest.approx(-2)
        assert (await heatmap.region_scores())[0].score == pytest.approx(-2)

    async def test_same_choice_twice_changes_nothing(self, heatmap):
        await heatmap.react("p1", "alice", ReactionChoice.like, SOMEWHERE)
        outcome = await heatmap.react("p1", "alice", ReactionChoice.like, SOMEWHERE)
        assert outcome.item_score == pytest.approx(2)

    async def test_reactions_from_different_users_add_up(self, heatmap):
        await heatmap.react("p1", "alice", ReactionChoice.heart)
        await heatmap.react("p1", "bob", ReactionChoice.angry)
        await heatmap.react("p1", "carol", ReactionChoice.like)

        assert await heatmap.item_score("p1") == pytest.approx(2)
        assert await heatmap.reactions.average_sentiment("p1") == pytest.approx(2 / 3)

    async def test_unreact_restores_score(self, heatmap):
        await heatmap.react("p1", "alice", ReactionChoice.check, SOMEWHERE)
        outcome = await heatmap.unreact("p1", "alice", SOMEWHERE)

        assert outcome.item_score == pytest.approx(0)
        assert await heatmap.reactions.get_reactions("p1") == []
        assert await heatmap.reactions.average_sentiment("p1") is None

    async def test_unreact_without_reaction(self, heatmap):
        with pytest.raises(ReactionNotFoundError):
            await heatmap.unreact("p1", "alice")

    async def test_unsupported_region_left_off(self, fake_db, scores):
        heatmap = SentimentHeatmap(ReactionStore(fake_db), scores, StubGeocoder("Paris"))
        outcome = await heatmap.react("p1", "alice", ReactionChoice.heart, SOMEWHERE)

        assert outcome.region is None
        assert outcome.item_score == pytest.approx(3)
        assert await heatmap.region_scores() == []

    async def test_unresolvable_location_left_off(self, fake_db, scores):
        heatmap = SentimentHeatmap(ReactionStore(fake_db), scores, StubGeocoder(None))
        outcome = await heatmap.react("p1", "alice", ReactionChoice.heart, SOMEWHERE)

        assert outcome.region is None
        assert len(await heatmap.reactions.get_reactions("p1")) == 1

    async def test_no_location_skips_geocoder(self, fake_db, scores):
        geocoder = StubGeocoder("Cambridge")
        heatmap = SentimentHeatmap(ReactionStore(fake_db), scores, geocoder)
        await heatmap.react("p1", "alice", ReactionChoice.heart)
        assert geocoder.calls == []

    def test_supported_regions(self):
        assert "Cambridge" in SUPPORTED_REGIONS
        assert len(SUPPORTED_REGIONS) == 16


# ── Failed score updates ─────────────────────────────────────────────────────

def _fail_updates(scores, kind):
    """Make every score update of *kind* lose its compare-and-swap."""
    original = scores.apply

    async def apply(k, key, delta):
        if k == kind:
            raise ConcurrentUpdateError(key=f"{k}:{key}")
        return await original(k, key, delta)

    scores.apply = apply


class TestFailedScoreUpdate:

    async def test_new_reaction_rolled_back(self, heatmap, scores):
        _fail_updates(scores, ITEM)
        with pytest.raises(ConcurrentUpdateError):
            await heatmap.react("p1", "alice", ReactionChoice.heart, SOMEWHERE)

        assert await heatmap.reactions.get_reactions("p1") == []
        del scores.apply
        with pytest.raises(ReactionNotFoundError):
            await heatmap.unreact("p1", "alice", SOMEWHERE)
        assert await heatmap.item_score("p1") == 0

    async def test_changed_reaction_restored(self, heatmap, scores):
        await heatmap.react("p1", "alice", ReactionChoice.heart, SOMEWHERE)
        _fail_updates(scores, REGION)
        with pytest.raises(ConcurrentUpdateError):
            await heatmap.react("p1", "alice", ReactionChoice.sad, SOMEWHERE)

        reactions = await heatmap.reactions.get_reactions("p1")
        assert [r["choice"] for r in reactions] == ["heart"]
        assert await heatmap.item_score("p1") == pytest.approx(3)
        assert (await heatmap.region_scores())[0].score == pytest.approx(3)

    async def test_removed_reaction_restored(self, heatmap, scores):
        await heatmap.react("p1", "alice", ReactionChoice.like)
        _fail_updates(scores, ITEM)
        with pytest.raises(ConcurrentUpdateError):
            await heatmap.unreact("p1", "alice")

        reactions = await heatmap.reactions.get_reactions("p1")
        assert [(r["by"], r["choice"]) for r in reactions] == [("alice", "like")]
        del scores.apply
        outcome = await heatmap.unreact("p1", "alice")
        assert outcome.item_score == pytest.approx(0)


# ── Route ────────────────────────────────────────────────────────────────────

class TestHeatmapRoute:

    async def test_empty(self, api):
        r = await api.get("/api/v1/heatmap")
        assert r.status_code == 200
        data = r.json()
        assert data["regions"] == []
        assert data["half_life_hours"] == 24.0

    async def test_requires_database(self, client):
        r = await client.get("/api/v1/heatmap")
        assert r.status_code == 503
