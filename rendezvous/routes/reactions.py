"""
reactions.py — Reactions to posts.

Routes:
  GET    /api/v1/posts/{post_id}/reactions  — reactions, counts, mean and decayed score
  POST   /api/v1/posts/{post_id}/reactions  — add or change the caller's reaction
  DELETE /api/v1/posts/{post_id}/reactions  — remove the caller's reaction

Every change also feeds the sentiment heatmap, bucketed by the post's map
location. Posts that are not pinned on the map, or sit outside the
supported regions, only update their own score.
"""

from collections import Counter

from fastapi import Depends, Request

from rendezvous.core.routing import Route, build_router
from rendezvous.dependencies import get_content, get_geo_index, get_heatmap
from rendezvous.models.reaction import ReactionOut, ReactionSummary, ReactRequest, ReactResponse
from rendezvous.routes.auth import CurrentUser
from rendezvous.services.content import ContentStore
from rendezvous.services.geo_index import POSTS_LAYER, GeoIndex
from rendezvous.services.heatmap import SentimentHeatmap


async def get_reactions(
    post_id: str,
    content: ContentStore = Depends(get_content),
    heatmap: SentimentHeatmap = Depends(get_heatmap),
):
    post = await content.get_post(post_id)
    target = str(post["_id"])
    reactions = await heatmap.reactions.get_reactions(target)
    return ReactionSummary(
        post_id=target,
        reactions=[ReactionOut(by=r["by"], to=r["to"], choice=r["choice"]) for r in reactions],
        counts=dict(Counter(r["choice"] for r in reactions)),
        average_sentiment=await heatmap.reactions.average_sentiment(target),
        score=await heatmap.item_score(target),
    )


async def react(
    request: Request,
    post_id: str,
    payload: ReactRequest,
    current_user: CurrentUser,
    content: ContentStore = Depends(get_content),
    geo: GeoIndex = Depends(get_geo_index),
    heatmap: SentimentHeatmap = Depends(get_heatmap),
):
    post = await content.get_post(post_id)
    location = await geo.locate(POSTS_LAYER, post["_id"])
    target = str(post["_id"])
    outcome = await heatmap.react(target, current_user.id, payload.choice, location)
    return ReactResponse(
        msg="reaction successful!",
        sentiment=await heatmap.reactions.average_sentiment(target),
        score=outcome.item_score,
        region=outcome.region,
    )


async def unreact(
    request: Request,
    post_id: str,
    current_user: CurrentUser,
    content: ContentStore = Depends(get_content),
    geo: GeoIndex = Depends(get_geo_index),
    heatmap: SentimentHeatmap = Depends(get_heatmap),
):
    post = await content.get_post(post_id)
    location = await geo.locate(POSTS_LAYER, post["_id"])
    target = str(post["_id"])
    outcome = await heatmap.unreact(target, current_user.id, location)
    return ReactResponse(
        msg="reaction deleted!",
        sentiment=await heatmap.reactions.average_sentiment(target),
        score=outcome.item_score,
        region=outcome.region,
    )


ROUTES = [
    Route("GET", "/{post_id}/reactions", get_reactions, response_model=ReactionSummary),
    Route("POST", "/{post_id}/reactions", react, response_model=ReactResponse, limit="60/minute"),
    Route("DELETE", "/{post_id}/reactions", unreact, response_model=ReactResponse, limit="60/minute"),
]

router = build_router("/api/v1/posts", ["reactions"], ROUTES)
