"""
collaboration.py — N-party contribution barrier.

A session is created for a fixed member set. Each member contributes
exactly one item; the member moves from `pending` to `contributions`
in one atomic update. When `pending` is empty the session is complete
and finalize() hands back the items in contribution order and deletes
the session (contributions are embedded, so they go with it).

Document shape (collection `collaborations`):

    {
      "members":       ["u1", "u2"],          # original set, sorted
      "member_key":    "u1|u2",               # exact-set lookup key
      "pending":       ["u2"],                # shrinks only
      "contributions": [{"by": "u1", "item": ObjectId(...)}],
      "location":      {"lat": ..., "lng": ...} | None
    }

Invariant: len(pending) + len(contributions) == len(members).
"""

import logging
from typing import Iterable, Optional

from rendezvous.core.errors import (
    AlreadyContributedError,
    BadValuesError,
    NotAMemberError,
    SessionIncompleteError,
    SessionNotFoundError,
)
from rendezvous.core.store import DocCollection, to_object_id
from rendezvous.models.geo import Location

logger = logging.getLogger(__name__)


def member_key(members: Iterable[str]) -> str:
    return "|".join(sorted(members))


def is_complete(session: dict) -> bool:
    return not session["pending"]


class CollaborationService:
    def __init__(self, db) -> None:
        self.sessions = DocCollection(db, "collaborations")

    async def create(self, members: Iterable[str], location: Optional[Location] = None):
        members = list(members)
        if not members:
            raise BadValuesError(reason="A collaboration needs at least one member")
        if len(set(members)) != len(members):
            raise BadValuesError(reason="Collaboration members must be distinct")

        ordered = sorted(members)
        session_id = await self.sessions.create_one(
            {
                "members": ordered,
                "member_key": member_key(ordered),
                "pending": list(ordered),
                "contributions": [],
                "location": location.model_dump() if location else None,
            }
        )
        logger.info("Collaboration %s created for %s", session_id, ordered)
        return session_id

    async def get(self, session_id) -> dict:
        sid = to_object_id(session_id)
        session = await self.sessions.read_one({"_id": sid})
        if session is None:
            raise SessionNotFoundError(session=sid)
        return session

    async def get_by_user(self, user: str) -> dict:
        """The session the user still has to contribute to."""
        session = await self.sessions.read_one({"pending": user})
        if session is None:
            raise SessionNotFoundError(session=f"for {user}")
        return session

    async def find_by_members(self, members: Iterable[str]) -> Optional[dict]:
        return await self.sessions.read_one({"member_key": member_key(members)})

    async def find_by_item(self, item) -> Optional[dict]:
        """The open session holding *item* as a contribution, if any."""
        return await self.sessions.read_one({"contributions.item": item})

    async def contribute(self, member: str, item, session_id) -> dict:
        """Record *member*'s item and return the updated session."""
        sid = to_object_id(session_id)
        updated = await self.sessions.find_one_and_update(
            {"_id": sid, "pending": member},
            {
                "$pull": {"pending": member},
                "$push": {"contributions": {"by": member, "item": item}},
            },
        )
        if updated is not None:
            logger.info(
                "%s contributed to collaboration %s (%d pending)",
                member, sid, len(updated["pending"]),
            )
            return updated

        # The conditional update matched nothing: work out why.
        session = await self.sessions.read_one({"_id": sid})
        if session is None:
            raise SessionNotFoundError(session=sid)
        if any(c["by"] == member for c in session["contributions"]):
            raise AlreadyContributedError(user=member, session=sid)
        raise NotAMemberError(user=member, session=sid)

    async def finalize(self, session_id) -> list:
        """
        Delete a complete session and return its items in contribution order.

        Only one caller can finalize a given session; later callers get
        SessionNotFoundError.
        """
        sid = to_object_id(session_id)
        session = await self.sessions.pop_one({"_id": sid, "pending": []})
        if session is None:
            current = await self.sessions.read_one({"_id": sid})
            if current is None:
                raise SessionNotFoundError(session=sid)
            raise SessionIncompleteError(session=sid, pending=len(current["pending"]))

        logger.info("Collaboration %s finalized", sid)
        return [c["item"] for c in session["contributions"]]

    async def reopen(self, session: dict) -> None:
        """Put back a session popped by finalize() whose items were never published."""
        await self.sessions.restore(session)
        logger.info("Collaboration %s reopened", session["_id"])

    async def cleanup(self, session_id) -> bool:
        """Force-delete a session whatever its state. True if one was deleted."""
        deleted = await self.sessions.delete_one({"_id": to_object_id(session_id)})
        if deleted:
            logger.info("Collaboration %s cleaned up", session_id)
        return bool(deleted)

    async def cleanup_for_members(self, members: Iterable[str]) -> bool:
        session = await self.find_by_members(members)
        if session is None:
            return False
        return await self.cleanup(session["_id"])
