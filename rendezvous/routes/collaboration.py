"""
collaboration.py — Collaborative post routes.

Routes:
  GET  /api/v1/collab                   — the session the caller still has to contribute to
  GET  /api/v1/collab/{id}              — a session by id
  POST /api/v1/collab/{id}/contribute   — contribute the caller's piece

HOW A COLLABORATIVE POST IS BUILT
─────────────────────────────────
1. Accepting a meeting opens a session for {host, guest}.
2. Each member POSTs their text once. The text becomes a post piece and
   the member moves from `pending` to `contributions`.
3. The member whose contribution empties `pending` finalizes the session:
   the pieces are assembled into one post (contribution order), the post
   is pinned on the map at the session's location, and the session is
   deleted. If assembling the post fails the session is put back, and
   the next contribute call from any member publishes it.

All routes require a valid Bearer token.
"""

import logging

from fastapi import Depends, Request

from rendezvous.core.errors import AlreadyContributedError, DomainError
from rendezvous.core.routing import Route, build_router
from rendezvous.dependencies import get_collaborations, get_content, get_geo_index
from rendezvous.models.collaboration import (
    CollaborationOut,
    ContributeRequest,
    ContributeResponse,
    collaboration_doc_to_out,
)
from rendezvous.models.geo import Location
from rendezvous.models.post import post_doc_to_out
from rendezvous.routes.auth import CurrentUser
from rendezvous.services.collaboration import CollaborationService, is_complete
from rendezvous.services.content import ContentStore
from rendezvous.services.geo_index import POSTS_LAYER, GeoIndex

logger = logging.getLogger(__name__)


async def get_my_collaboration(
    current_user: CurrentUser,
    collaborations: CollaborationService = Depends(get_collaborations),
):
    return collaboration_doc_to_out(await collaborations.get_by_user(current_user.id))


async def get_collaboration(
    collab_id: str,
    current_user: CurrentUser,
    collaborations: CollaborationService = Depends(get_collaborations),
):
    return collaboration_doc_to_out(await collaborations.get(collab_id))


async def contribute(
    request: Request,
    collab_id: str,
    payload: ContributeRequest,
    current_user: CurrentUser,
    collaborations: CollaborationService = Depends(get_collaborations),
    content: ContentStore = Depends(get_content),
    geo: GeoIndex = Depends(get_geo_index),
):
    piece_id = await content.create_piece(current_user.id, payload.content)
    try:
        session = await collaborations.contribute(current_user.id, piece_id, collab_id)
    except DomainError as exc:
        # Not accepted into the session: don't leave an orphan piece behind.
        await content.delete_piece(piece_id)
        if not isinstance(exc, AlreadyContributedError):
            raise
        session = await collaborations.get(collab_id)
        if not is_complete(session):
            raise
        # Complete but never published: an earlier attempt failed part way.

    if not is_complete(session):
        return ContributeResponse(
            msg="Successfully contributed!",
            complete=False,
            collaboration=collaboration_doc_to_out(session),
        )

    items = await collaborations.finalize(session["_id"])
    try:
        post = await content.assemble(items)
    except Exception:
        await collaborations.reopen(session)
        raise
    location = Location(**session["location"]) if session.get("location") else None
    if location is not None:
        await geo.add(POSTS_LAYER, post["_id"], location)

    logger.info("Collaboration %s produced post %s", session["_id"], post["_id"])
    resolved = (await content.resolve([post]))[0]
    return ContributeResponse(
        msg="Collaborative post successfully created!",
        complete=True,
        post=post_doc_to_out(resolved, location),
    )


ROUTES = [
    Route("GET", "", get_my_collaboration, response_model=CollaborationOut),
    Route("GET", "/{collab_id}", get_collaboration, response_model=CollaborationOut),
    Route("POST", "/{collab_id}/contribute", contribute, response_model=ContributeResponse, limit="30/minute"),
]

router = build_router("/api/v1/collab", ["collaboration"], ROUTES)
