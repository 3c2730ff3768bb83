"""
posts.py — Post routes.

Routes:
  GET    /api/v1/posts                     — posts, optionally by author and/or nearest to (lat, lng)
  POST   /api/v1/posts                     — create a single-author post (optionally pinned on the map)
  PATCH  /api/v1/posts/pieces/{piece_id}   — edit one of the caller's pieces
  DELETE /api/v1/posts/pieces/{piece_id}   — delete one of the caller's pieces

Listing:
  ?author=<username>   restrict to posts containing a piece by that user
  ?lat=&lng=           order by distance from that point (map layer "posts");
                       only posts pinned on the map are returned in this mode
  ?limit=              at most this many posts

Deleting the last piece of a post deletes the post and its map marker.
A piece contributed to a still-open collaboration cannot be deleted (403).
"""

from typing import Optional

from fastapi import Depends, Query, Request, status

from rendezvous.core.config import settings
from rendezvous.core.errors import NotFoundError, PieceInCollaborationError
from rendezvous.core.routing import Route, build_router
from rendezvous.dependencies import get_collaborations, get_content, get_geo_index, require_db
from rendezvous.models.geo import anchor_from_query
from rendezvous.models.post import (
    PieceDeleteResponse,
    PieceOut,
    PieceUpdate,
    PostCreate,
    PostOut,
    piece_doc_to_out,
    post_doc_to_out,
)
from rendezvous.routes.auth import CurrentUser, find_user_id
from rendezvous.services.collaboration import CollaborationService
from rendezvous.services.content import ContentStore
from rendezvous.services.geo_index import POSTS_LAYER, GeoIndex, marker_location


async def list_posts(
    author: Optional[str] = Query(default=None),
    lat: Optional[float] = Query(default=None, ge=-90, le=90),
    lng: Optional[float] = Query(default=None, ge=-180, le=180),
    limit: int = Query(default=settings.nearby_default_limit, ge=1, le=100),
    db=Depends(require_db),
    content: ContentStore = Depends(get_content),
    geo: GeoIndex = Depends(get_geo_index),
):
    anchor = anchor_from_query(lat, lng)

    posts = None
    if author:
        author_id = await find_user_id(db, author)
        if author_id is None:
            raise NotFoundError(what="User", id=author)
        posts = await content.by_author(author_id)

    if anchor is not None:
        poi_filter = {"poi": {"$in": [p["_id"] for p in posts]}} if posts is not None else None
        markers = await geo.find_nearby(POSTS_LAYER, poi_filter, limit=limit, anchor=anchor)
        locations = {m["poi"]: marker_location(m) for m in markers}
        posts = await content.posts_by_ids([m["poi"] for m in markers])
    else:
        if posts is None:
            posts = await content.get_posts()
        posts = posts[:limit]
        markers = await geo.query(POSTS_LAYER, {"poi": {"$in": [p["_id"] for p in posts]}})
        locations = {}
        for marker in markers:
            locations.setdefault(marker["poi"], marker_location(marker))

    resolved = await content.resolve(posts)
    return [post_doc_to_out(post, locations.get(post["_id"])) for post in resolved]


async def create_post(
    request: Request,
    payload: PostCreate,
    current_user: CurrentUser,
    content: ContentStore = Depends(get_content),
    geo: GeoIndex = Depends(get_geo_index),
):
    post = await content.create_single(current_user.id, payload.content)
    if payload.location is not None:
        await geo.add(POSTS_LAYER, post["_id"], payload.location)
    resolved = (await content.resolve([post]))[0]
    return post_doc_to_out(resolved, payload.location)


async def update_piece(
    piece_id: str,
    payload: PieceUpdate,
    current_user: CurrentUser,
    content: ContentStore = Depends(get_content),
):
    await content.assert_author_of_piece(current_user.id, piece_id)
    await content.update_piece(piece_id, payload.content)
    return piece_doc_to_out(await content.get_piece(piece_id))


async def delete_piece(
    piece_id: str,
    current_user: CurrentUser,
    content: ContentStore = Depends(get_content),
    geo: GeoIndex = Depends(get_geo_index),
    collaborations: CollaborationService = Depends(get_collaborations),
):
    piece = await content.assert_author_of_piece(current_user.id, piece_id)
    # Pieces waiting in a session are locked until it completes or ends.
    session = await collaborations.find_by_item(piece["_id"])
    if session is not None:
        raise PieceInCollaborationError(piece=piece["_id"], session=session["_id"])
    post_id, post_deleted = await content.delete_piece(piece_id)
    if post_deleted:
        await geo.remove(POSTS_LAYER, post_id)
    return PieceDeleteResponse(
        msg=f"Post piece{' and post' if post_deleted else ''} deleted successfully!",
        post_id=str(post_id) if post_id else None,
        post_deleted=post_deleted,
    )


ROUTES = [
    Route("GET", "", list_posts, response_model=list[PostOut]),
    Route("POST", "", create_post, response_model=PostOut, status_code=status.HTTP_201_CREATED, limit="30/minute"),
    Route("PATCH", "/pieces/{piece_id}", update_piece, response_model=PieceOut),
    Route("DELETE", "/pieces/{piece_id}", delete_piece, response_model=PieceDeleteResponse),
]

router = build_router("/api/v1/posts", ["posts"], ROUTES)
