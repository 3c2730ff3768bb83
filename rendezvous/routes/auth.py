"""
auth.py — Authentication routes.

Routes:
  POST /auth/register  — create new account
  POST /auth/login     — exchange credentials for JWT
  GET  /auth/me        — return current user (requires valid JWT)

Passwords are hashed with bcrypt; tokens are HS256 JWTs whose subject
is the user id. Every other route identifies the caller through the
CurrentUser dependency defined here.

All errors use HTTPException so FastAPI serialises them as:
  { "detail": "..." }
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import DuplicateKeyError

from rendezvous.core.routing import Route, build_router
from rendezvous.core.security import create_access_token, decode_access_token, hash_password, verify_password
from rendezvous.dependencies import require_db
from rendezvous.models.user import LoginRequest, Token, UserCreate, UserOut

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


# ── Helpers ───────────────────────────────────────────────────────────────────

def _doc_to_user_out(doc: dict) -> UserOut:
    """Convert a raw MongoDB document to a UserOut Pydantic model."""
    return UserOut(
        id=str(doc["_id"]),
        username=doc["username"],
        created_at=doc.get("created_at", datetime.now(tz=timezone.utc)),
    )


async def find_user_id(db, username: str) -> Optional[str]:
    """Resolve a username to a user id (None if unknown)."""
    doc = await db["users"].find_one({"username": username, "is_active": True})
    return str(doc["_id"]) if doc else None


async def _get_current_user(credentials: CredDep, db=Depends(require_db)) -> UserOut:
    """
    FastAPI dependency — extracts and validates the Bearer token,
    then fetches the user from MongoDB.

    Raises 401 if the token is missing, invalid, or the user no longer exists.
    """
    cred_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise cred_error

    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise cred_error

    try:
        oid = ObjectId(user_id)
    except InvalidId:
        raise cred_error

    doc = await db["users"].find_one({"_id": oid, "is_active": True})
    if not doc:
        raise cred_error

    return _doc_to_user_out(doc)


# Re-export so other routes can depend on it
CurrentUser = Annotated[UserOut, Depends(_get_current_user)]


# ── Handlers ──────────────────────────────────────────────────────────────────

async def register(payload: UserCreate, db=Depends(require_db)):
    """Register a new user and return a JWT."""
    user_doc = {
        "username": payload.username,
        "hashed_password": hash_password(payload.password),
        "created_at": datetime.now(tz=timezone.utc),
        "is_active": True,
    }
    # Duplicate username check; the unique index covers concurrent registrations
    existing = await db["users"].find_one({"username": payload.username})
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username is already taken")
    try:
        result = await db["users"].insert_one(user_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username is already taken")
    user_doc["_id"] = result.inserted_id

    token = create_access_token(str(result.inserted_id), payload.username)
    return Token(access_token=token, user=_doc_to_user_out(user_doc))


async def login(payload: LoginRequest, db=Depends(require_db)):
    """Authenticate with username + password and return a JWT."""
    _cred_err = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect username or password",
        headers={"WWW-Authenticate": "Bearer"},
    )

    doc = await db["users"].find_one({"username": payload.username, "is_active": True})
    if not doc:
        raise _cred_err

    if not verify_password(payload.password, doc["hashed_password"]):
        raise _cred_err

    token = create_access_token(str(doc["_id"]), doc["username"])
    return Token(access_token=token, user=_doc_to_user_out(doc))


async def me(current_user: CurrentUser):
    """Return the currently authenticated user's profile."""
    return current_user


ROUTES = [
    Route("POST", "/register", register, response_model=Token, status_code=status.HTTP_201_CREATED),
    Route("POST", "/login", login, response_model=Token),
    Route("GET", "/me", me, response_model=UserOut),
]

router = build_router("/auth", ["auth"], ROUTES)
