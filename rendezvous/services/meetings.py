"""
meetings.py — Meeting requests and meetings.

Per-user lifecycle:

    Idle ──send_request──▶ RequestPending ──(someone accepts)──▶ Matched ──end_meeting──▶ Idle
      ▲                          │
      └──────cancel_request──────┘

Exclusivity rules (enforced here, backed by unique indexes):
  * at most one pending request per user   (meeting_requests.requester unique)
  * at most one meeting per user            (meetings.participants unique, multikey)
  * never a pending request and a meeting at the same time

Race handling
─────────────
Every check-then-write is either a single atomic Mongo operation or is
followed by a compensating step:
  * accept claims the request with find_one_and_delete, so of N concurrent
    acceptors exactly one gets the document and the others see NotFound
  * a duplicate request/meeting loses on the unique index (DuplicateKeyError)
  * the request↔meeting cross rule is re-checked after the write and the
    write is rolled back if another request raced in

Meeting location
────────────────
The meeting is anchored at the componentwise SUM of the request location
and the acceptor's location (not the midpoint). Tests pin this behaviour.
"""

import logging
from typing import NamedTuple, Optional

from pymongo.errors import DuplicateKeyError

from rendezvous.core.errors import (
    AlreadyMeetingError,
    AlreadyRequestingError,
    MeetingNotFoundError,
    MeetingRequestNotFoundError,
)
from rendezvous.core.store import RECENT_FIRST, DocCollection, to_object_id
from rendezvous.models.geo import Location
from rendezvous.services.geo_index import MEETING_REQUESTS_LAYER, GeoIndex

logger = logging.getLogger(__name__)


class UserMeetingState(NamedTuple):
    state: str  # "requesting" | "meeting"
    doc: dict


class MeetingCoordinator:
    def __init__(self, db, geo: GeoIndex) -> None:
        self.requests = DocCollection(db, "meeting_requests")
        self.meetings = DocCollection(db, "meetings")
        self.geo = geo

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_request(self, request_id) -> dict:
        rid = to_object_id(request_id)
        request = await self.requests.read_one({"_id": rid})
        if request is None:
            raise MeetingRequestNotFoundError(request=rid)
        return request

    async def get_request_by_user(self, user: str) -> dict:
        request = await self.requests.read_one({"requester": user})
        if request is None:
            raise MeetingRequestNotFoundError(request=f"from {user}")
        return request

    async def get_meeting_by_user(self, user: str) -> dict:
        meeting = await self.meetings.read_one({"participants": user})
        if meeting is None:
            raise MeetingNotFoundError(user=user)
        return meeting

    async def get_by_user(self, user: str) -> UserMeetingState:
        """The user's pending request or active meeting."""
        request = await self.requests.read_one({"requester": user})
        if request is not None:
            return UserMeetingState("requesting", request)
        meeting = await self.meetings.read_one({"participants": user})
        if meeting is not None:
            return UserMeetingState("meeting", meeting)
        raise MeetingNotFoundError(user=user)

    async def get_requests(self, query: Optional[dict] = None) -> list[dict]:
        return await self.requests.read_many(query or {}, sort=RECENT_FIRST)

    async def requests_by_ids(self, ids: list) -> list[dict]:
        """Requests for *ids*, in the order given; ids with no request are skipped."""
        docs = await self.requests.read_many({"_id": {"$in": list(ids)}})
        by_id = {doc["_id"]: doc for doc in docs}
        return [by_id[i] for i in ids if i in by_id]

    async def nearby_requests(self, anchor: Optional[Location], limit: int) -> list[dict]:
        markers = await self.geo.find_nearby(MEETING_REQUESTS_LAYER, limit=limit, anchor=anchor)
        return await self.requests_by_ids([m["poi"] for m in markers])

    # ── Transitions ───────────────────────────────────────────────────────────

    async def send_request(self, user: str, location: Location) -> dict:
        await self._ensure_idle(user)
        try:
            request_id = await self.requests.create_one({"requester": user, "location": location.model_dump()})
        except DuplicateKeyError:
            raise AlreadyRequestingError(user=user)

        # A meeting may have been created for this user between the check and the insert.
        if await self.meetings.read_one({"participants": user}) is not None:
            await self.requests.delete_one({"_id": request_id})
            raise AlreadyMeetingError(user=user)

        await self.geo.add(MEETING_REQUESTS_LAYER, request_id, location)
        logger.info("Meeting request %s sent by %s", request_id, user)
        return await self.get_request(request_id)

    async def cancel_request(self, user: str):
        """Withdraw the user's request. Returns its id, or None if there was none."""
        request = await self.requests.pop_one({"requester": user})
        if request is None:
            return None
        await self.geo.remove(MEETING_REQUESTS_LAYER, request["_id"])
        logger.info("Meeting request %s cancelled by %s", request["_id"], user)
        return request["_id"]

    async def accept_request(self, acceptor: str, acceptor_location: Location, request_id) -> dict:
        """
        Turn a pending request into a meeting between its requester (host)
        and *acceptor* (guest). The requester is not re-checked: holding a
        request already proves they were idle.
        """
        rid = to_object_id(request_id)
        await self._ensure_idle(acceptor)

        request = await self.get_request(rid)
        location = Location(**request["location"]) + acceptor_location

        claimed = await self.requests.pop_one({"_id": rid})
        if claimed is None:
            # Another acceptor got there first.
            raise MeetingRequestNotFoundError(request=rid)

        host = claimed["requester"]
        try:
            meeting_id = await self.meetings.create_one(
                {
                    "host": host,
                    "guest": acceptor,
                    "participants": [host, acceptor],
                    "location": location.model_dump(),
                }
            )
        except DuplicateKeyError:
            await self._restore_request(claimed)
            busy = acceptor if await self.meetings.read_one({"participants": acceptor}) else host
            raise AlreadyMeetingError(user=busy)

        # The acceptor may have sent a request of their own in the meantime.
        if await self.requests.read_one({"requester": acceptor}) is not None:
            await self.meetings.delete_one({"_id": meeting_id})
            await self._restore_request(claimed)
            raise AlreadyRequestingError(user=acceptor)

        await self.geo.remove(MEETING_REQUESTS_LAYER, rid)
        logger.info("Request %s accepted by %s → meeting %s", rid, acceptor, meeting_id)
        return await self.meetings.read_one({"_id": meeting_id})

    async def end_meeting(self, user: str) -> dict:
        """
        End the meeting the user takes part in and return it.

        Tearing down the linked collaboration session is the caller's job.
        """
        meeting = await self.meetings.pop_one({"participants": user})
        if meeting is None:
            raise MeetingNotFoundError(user=user)
        logger.info("Meeting %s ended by %s", meeting["_id"], user)
        return meeting

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _ensure_idle(self, user: str) -> None:
        if await self.requests.read_one({"requester": user}) is not None:
            raise AlreadyRequestingError(user=user)
        if await self.meetings.read_one({"participants": user}) is not None:
            raise AlreadyMeetingError(user=user)

    async def _restore_request(self, claimed: dict) -> None:
        """Put a claimed request back, unless its requester has sent a newer one since."""
        try:
            await self.requests.restore(claimed)
        except DuplicateKeyError:
            await self.geo.remove(MEETING_REQUESTS_LAYER, claimed["_id"])
            logger.info("Request %s dropped: %s has a newer one", claimed["_id"], claimed["requester"])
