"""
meetings.py — Meeting request and meeting routes.

Routes:
  GET    /api/v1/meeting/requests              — pending requests, nearest first (?lat&lng&limit)
  POST   /api/v1/meeting/requests              — send a request from the caller's location
  DELETE /api/v1/meeting/requests              — withdraw the caller's request (idempotent)
  PUT    /api/v1/meeting/accept/{request_id}   — accept a request → meeting + collaboration
  GET    /api/v1/meeting                       — the caller's request or meeting
  DELETE /api/v1/meeting                       — end the caller's meeting

HOW ACCEPTING WORKS
───────────────────
1. MeetingCoordinator turns the request into a meeting (host = requester,
   guest = caller) anchored at request location + caller location.
2. A collaboration session is opened for {host, guest} at the meeting
   location; its id is returned so both sides can contribute. If that
   fails the meeting is ended again and both users are idle.
3. Ending the meeting later removes that session if it is still open.

All routes require a valid Bearer token.
"""

from typing import Optional

from fastapi import Depends, Query, Request, status

from rendezvous.core.config import settings
from rendezvous.core.routing import Route, build_router
from rendezvous.dependencies import get_collaborations, get_meetings
from rendezvous.models.geo import Location, anchor_from_query
from rendezvous.models.meeting import (
    AcceptRequest,
    AcceptResponse,
    CancelResponse,
    EndMeetingResponse,
    MeetingRequestCreate,
    MeetingRequestOut,
    MeetingStatus,
    meeting_doc_to_out,
    request_doc_to_out,
)
from rendezvous.routes.auth import CurrentUser
from rendezvous.services.collaboration import CollaborationService
from rendezvous.services.meetings import MeetingCoordinator


async def list_requests(
    current_user: CurrentUser,
    lat: Optional[float] = Query(default=None, ge=-90, le=90),
    lng: Optional[float] = Query(default=None, ge=-180, le=180),
    limit: int = Query(default=settings.nearby_default_limit, ge=1, le=100),
    meetings: MeetingCoordinator = Depends(get_meetings),
):
    """Pending requests on the map, closest to (lat, lng) first when given."""
    anchor = anchor_from_query(lat, lng)
    requests = await meetings.nearby_requests(anchor, limit)
    return [request_doc_to_out(r) for r in requests]


async def send_request(
    request: Request,
    payload: MeetingRequestCreate,
    current_user: CurrentUser,
    meetings: MeetingCoordinator = Depends(get_meetings),
):
    doc = await meetings.send_request(current_user.id, payload.location)
    return request_doc_to_out(doc)


async def cancel_request(current_user: CurrentUser, meetings: MeetingCoordinator = Depends(get_meetings)):
    removed = await meetings.cancel_request(current_user.id)
    if removed is None:
        return CancelResponse(msg="No pending request")
    return CancelResponse(msg="Removed request!", removed_request_id=str(removed))


async def accept_request(
    request: Request,
    request_id: str,
    payload: AcceptRequest,
    current_user: CurrentUser,
    meetings: MeetingCoordinator = Depends(get_meetings),
    collaborations: CollaborationService = Depends(get_collaborations),
):
    meeting = await meetings.accept_request(current_user.id, payload.location, request_id)
    try:
        session_id = await collaborations.create(
            [meeting["host"], meeting["guest"]],
            location=Location(**meeting["location"]),
        )
    except Exception:
        # No meeting without its session.
        await meetings.end_meeting(current_user.id)
        raise
    return AcceptResponse(
        msg="Accepted request!",
        meeting=meeting_doc_to_out(meeting),
        collaboration_id=str(session_id),
    )


async def get_meeting(current_user: CurrentUser, meetings: MeetingCoordinator = Depends(get_meetings)):
    state, doc = await meetings.get_by_user(current_user.id)
    if state == "requesting":
        return MeetingStatus(state=state, request=request_doc_to_out(doc))
    return MeetingStatus(state=state, meeting=meeting_doc_to_out(doc))


async def end_meeting(
    current_user: CurrentUser,
    meetings: MeetingCoordinator = Depends(get_meetings),
    collaborations: CollaborationService = Depends(get_collaborations),
):
    meeting = await meetings.end_meeting(current_user.id)
    removed = await collaborations.cleanup_for_members(meeting["participants"])
    return EndMeetingResponse(
        msg="Meeting ended!",
        meeting_id=str(meeting["_id"]),
        collaboration_removed=removed,
    )


ROUTES = [
    Route("GET", "/requests", list_requests, response_model=list[MeetingRequestOut]),
    Route("POST", "/requests", send_request, response_model=MeetingRequestOut,
          status_code=status.HTTP_201_CREATED, limit="10/minute"),
    Route("DELETE", "/requests", cancel_request, response_model=CancelResponse),
    Route("PUT", "/accept/{request_id}", accept_request, response_model=AcceptResponse, limit="20/minute"),
    Route("GET", "", get_meeting, response_model=MeetingStatus),
    Route("DELETE", "", end_meeting, response_model=EndMeetingResponse),
]

router = build_router("/api/v1/meeting", ["meeting"], ROUTES)
