"""
reactions.py — One reaction per (reactor, target) pair.

react() is an upsert: a new choice replaces the previous one for the
same pair, and the previous choice is returned so callers can compute
the sentiment delta.
"""

import logging
from typing import Optional

from pymongo.errors import DuplicateKeyError

from rendezvous.core.errors import ReactionNotFoundError
from rendezvous.core.store import DocCollection
from rendezvous.models.reaction import ReactionChoice

logger = logging.getLogger(__name__)


class ReactionStore:
    def __init__(self, db) -> None:
        self.reactions = DocCollection(db, "reactions")

    async def get_reactions(self, target: str) -> list[dict]:
        return await self.reactions.read_many({"to": target})

    async def react(self, target: str, reactor: str, choice: ReactionChoice) -> Optional[ReactionChoice]:
        """Set the reactor's choice on target. Returns the previous choice, if any."""
        query = {"by": reactor, "to": target}
        update = {"$set": {"choice": choice.value}}
        try:
            previous = await self.reactions.find_one_and_update(query, update, upsert=True, return_new=False)
        except DuplicateKeyError:
            # Lost an insert race for the same pair; the document exists now.
            previous = await self.reactions.find_one_and_update(query, update, return_new=False)
        return ReactionChoice(previous["choice"]) if previous else None

    async def unreact(self, target: str, reactor: str) -> ReactionChoice:
        """Remove the reaction and return the choice it had."""
        removed = await self.reactions.pop_one({"by": reactor, "to": target})
        if removed is None:
            raise ReactionNotFoundError(user=reactor, target=target)
        return ReactionChoice(removed["choice"])

    async def average_sentiment(self, target: str) -> Optional[float]:
        reactions = await self.get_reactions(target)
        if not reactions:
            return None
        return sum(ReactionChoice(r["choice"]).sentiment for r in reactions) / len(reactions)

    async def revert(
        self,
        target: str,
        reactor: str,
        applied: Optional[ReactionChoice],
        previous: Optional[ReactionChoice],
    ) -> None:
        """
        Undo a react/unreact whose score update failed. *applied* is the
        choice that was written (None for a removal), *previous* what was
        there before. Nothing happens if the pair has changed since.
        """
        query = {"by": reactor, "to": target}
        if applied is None:
            await self.reactions.update_one_with_operators(
                query, {"$setOnInsert": {"choice": previous.value}}, upsert=True
            )
        elif previous is None:
            await self.reactions.delete_one({**query, "choice": applied.value})
        else:
            await self.reactions.update_one_with_operators(
                {**query, "choice": applied.value}, {"$set": {"choice": previous.value}}
            )
        logger.info("Reaction of %s to %s rolled back to %s", reactor, target, previous)
