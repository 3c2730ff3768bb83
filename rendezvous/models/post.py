"""
post.py — Pydantic schemas for content pieces and composite posts.

A post is an ordered list of pieces, each written by one author.
Single-author posts have one piece; collaborative posts have one piece
per session member, in contribution order.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rendezvous.models.geo import Location


class PostCreate(BaseModel):
    """Payload for POST /api/v1/posts."""
    content: str = Field(..., min_length=1, max_length=5000)
    location: Optional[Location] = None


class PieceUpdate(BaseModel):
    """Payload for PATCH /api/v1/posts/pieces/{piece_id}."""
    content: str = Field(..., min_length=1, max_length=5000)


class PieceOut(BaseModel):
    id: str
    author: str
    content: str


class PostOut(BaseModel):
    id: str
    pieces: list[PieceOut]
    location: Optional[Location] = None
    date_updated: Optional[datetime] = None


class PieceDeleteResponse(BaseModel):
    msg: str
    post_id: Optional[str] = None
    post_deleted: bool


def piece_doc_to_out(doc: Optional[dict], piece_id=None) -> PieceOut:
    # A piece referenced by a post but already gone renders as empty.
    if doc is None:
        return PieceOut(id=str(piece_id), author="DELETED_USER", content="")
    return PieceOut(id=str(doc["_id"]), author=doc["author"], content=doc["content"])


def post_doc_to_out(doc: dict, location: Optional[Location] = None) -> PostOut:
    """Convert a resolved post (pieces already expanded) to PostOut."""
    return PostOut(
        id=str(doc["_id"]),
        pieces=[
            piece_doc_to_out(piece, piece_id)
            for piece, piece_id in zip(doc["pieces"], doc.get("piece_ids", doc["pieces"]))
        ],
        location=location,
        date_updated=doc.get("date_updated"),
    )
