"""
meeting.py — Pydantic schemas for meeting requests and meetings.

MeetingRequestCreate — body of POST /api/v1/meeting/requests
AcceptRequest        — body of PUT /api/v1/meeting/accept/{request_id}
MeetingRequestOut    — a pending request
MeetingOut           — an active meeting
MeetingStatus        — GET /api/v1/meeting: whichever of the two the user holds
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from rendezvous.models.geo import Location


class MeetingRequestCreate(BaseModel):
    location: Location


class AcceptRequest(BaseModel):
    location: Location


class MeetingRequestOut(BaseModel):
    id: str
    requester: str
    location: Location
    created_at: Optional[datetime] = None


class MeetingOut(BaseModel):
    id: str
    host: str
    guest: str
    location: Location


class MeetingStatus(BaseModel):
    state: Literal["requesting", "meeting"]
    request: Optional[MeetingRequestOut] = None
    meeting: Optional[MeetingOut] = None


class AcceptResponse(BaseModel):
    msg: str
    meeting: MeetingOut
    collaboration_id: str


class CancelResponse(BaseModel):
    msg: str
    removed_request_id: Optional[str] = None


class EndMeetingResponse(BaseModel):
    msg: str
    meeting_id: str
    collaboration_removed: bool


def request_doc_to_out(doc: dict) -> MeetingRequestOut:
    return MeetingRequestOut(
        id=str(doc["_id"]),
        requester=doc["requester"],
        location=Location(**doc["location"]),
        created_at=doc.get("date_created"),
    )


def meeting_doc_to_out(doc: dict) -> MeetingOut:
    return MeetingOut(
        id=str(doc["_id"]),
        host=doc["host"],
        guest=doc["guest"],
        location=Location(**doc["location"]),
    )
