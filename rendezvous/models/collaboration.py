"""
collaboration.py — Schemas for collaborative post sessions.
"""

from typing import Optional

from pydantic import BaseModel, Field

from rendezvous.models.geo import Location
from rendezvous.models.post import PostOut


class Contribution(BaseModel):
    by: str
    item: str


class CollaborationOut(BaseModel):
    id: str
    members: list[str]
    pending: list[str]
    contributions: list[Contribution]
    location: Optional[Location] = None


class ContributeRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class ContributeResponse(BaseModel):
    """Either the session still waiting for others, or the finished post."""

    msg: str
    complete: bool
    collaboration: Optional[CollaborationOut] = None
    post: Optional[PostOut] = None


def collaboration_doc_to_out(doc: dict) -> CollaborationOut:
    location = doc.get("location")
    return CollaborationOut(
        id=str(doc["_id"]),
        members=list(doc.get("members", [])),
        pending=list(doc.get("pending", [])),
        contributions=[
            Contribution(by=c["by"], item=str(c["item"])) for c in doc.get("contributions", [])
        ],
        location=Location(**location) if location else None,
    )
