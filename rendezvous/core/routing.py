"""
routing.py — Route tables.

Each route module declares its endpoints as a flat list of Route tuples
and turns it into an APIRouter with build_router(). The table is plain
data, so tests can assert on it without starting the app:

    ROUTES = [
        Route("GET",    "",          get_meeting, response_model=MeetingStatus),
        Route("DELETE", "",          end_meeting, response_model=EndMeetingResponse),
        Route("PUT",    "/accept/{request_id}", accept_request, limit="20/minute"),
    ]
    router = build_router("/api/v1/meeting", ["meeting"], ROUTES)

A route with `limit` is wrapped with the slowapi limiter; its endpoint
must take a `request: Request` parameter.
"""

from typing import Any, Callable, NamedTuple, Optional

from fastapi import APIRouter

from rendezvous.core.rate_limit import limiter


class Route(NamedTuple):
    method: str
    path: str
    endpoint: Callable
    response_model: Any = None
    status_code: int = 200
    limit: Optional[str] = None


def build_router(prefix: str, tags: list[str], routes: list[Route]) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=tags)
    for route in routes:
        endpoint = limiter.limit(route.limit)(route.endpoint) if route.limit else route.endpoint
        router.add_api_route(
            route.path,
            endpoint,
            methods=[route.method],
            response_model=route.response_model,
            status_code=route.status_code,
        )
    return router
