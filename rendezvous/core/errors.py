"""
errors.py — Domain error taxonomy.

Every service failure is a DomainError carrying:
  kind     — "not_found" | "not_allowed" | "bad_values" | "conflict"
  context  — the offending ids (user, request, session, piece, ...)
  template — a message pattern filled from context by the presentation layer

Services raise these; nothing in the services formats messages for humans.
The FastAPI exception handler registered in main.py turns them into:

  { "detail": "...", "error": "<kind>", "context": { ... } }

with the status code from STATUS_BY_KIND.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class DomainError(Exception):
    kind = "domain"
    template = "Operation failed"

    def __init__(self, **context: Any) -> None:
        self.context = {k: str(v) if v is not None else None for k, v in context.items()}
        super().__init__(self.message)

    @property
    def message(self) -> str:
        try:
            return self.template.format(**self.context)
        except (KeyError, IndexError):
            return self.template


# ── Kinds ─────────────────────────────────────────────────────────────────────

class NotFoundError(DomainError):
    kind = "not_found"
    template = "{what} {id} does not exist!"


class NotAllowedError(DomainError):
    kind = "not_allowed"
    template = "Operation not allowed"


class BadValuesError(DomainError):
    kind = "bad_values"
    template = "{reason}"


class ConflictError(DomainError):
    kind = "conflict"
    template = "Concurrent update on {key}, please retry"


# ── Not found ─────────────────────────────────────────────────────────────────

class MeetingNotFoundError(NotFoundError):
    template = "{user} is not involved in a meeting!"


class MeetingRequestNotFoundError(NotFoundError):
    template = "Meeting request {request} does not exist!"


class SessionNotFoundError(NotFoundError):
    template = "Collaboration {session} does not exist!"


class PieceNotFoundError(NotFoundError):
    template = "Post piece {piece} does not exist!"


class PostNotFoundError(NotFoundError):
    template = "Post {post} does not exist!"


class ReactionNotFoundError(NotFoundError):
    template = "{user} did not react to {target}!"


# ── Not allowed ───────────────────────────────────────────────────────────────

class AlreadyRequestingError(NotAllowedError):
    template = "Meeting request from {user} already exists!"


class AlreadyMeetingError(NotAllowedError):
    template = "{user} is already involved in a meeting!"


class AlreadyContributedError(NotAllowedError):
    template = "{user} already contributed to collaboration {session}!"


class NotAMemberError(NotAllowedError):
    template = "{user} is not a member of collaboration {session}!"


class SessionIncompleteError(NotAllowedError):
    template = "Collaboration {session} is still waiting for {pending} member(s)!"


class PieceAuthorMismatchError(NotAllowedError):
    template = "{user} is not the author of post piece {piece}!"


class PieceInCollaborationError(NotAllowedError):
    template = "Post piece {piece} belongs to open collaboration {session}!"


# ── Bad values ────────────────────────────────────────────────────────────────

class InvalidLocationError(BadValuesError):
    template = "Invalid location (lat={lat}, lng={lng})"


class InvalidIdError(BadValuesError):
    template = "Invalid id format: {id}"


# ── Conflict ──────────────────────────────────────────────────────────────────

class ConcurrentUpdateError(ConflictError):
    pass


# ── Presentation ──────────────────────────────────────────────────────────────

STATUS_BY_KIND = {
    "not_found": 404,
    "not_allowed": 403,
    "bad_values": 422,
    "conflict": 409,
}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a DomainError as the standard error body."""
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 400),
        content={"detail": exc.message, "error": exc.kind, "context": exc.context},
    )
