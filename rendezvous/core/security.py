"""
security.py — Credentials and access tokens.

Passwords are stored as bcrypt hashes (bcrypt used directly, no passlib).
Access tokens are python-jose JWTs:

    { "sub": "<user id>", "name": "<username>", "iat": ..., "exp": ..., "iss": "rendezvous" }

Every user id the services see (requester, host, guest, member, author,
reactor) is the `sub` of a token that passed decode_access_token().
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from rendezvous.core.config import settings

ISSUER = "rendezvous"


def hash_password(plain: str) -> str:
    """bcrypt hash of *plain* (bcrypt only looks at the first 72 bytes)."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def create_access_token(
    user_id: str,
    username: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Signed JWT for *user_id*, valid for settings.jwt_expiry_hours by default."""
    issued = datetime.now(tz=timezone.utc)
    claims = {
        "sub": user_id,
        "iat": issued,
        "exp": issued + (expires_delta or timedelta(hours=settings.jwt_expiry_hours)),
        "iss": ISSUER,
    }
    if username:
        claims["name"] = username
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """The user id carried by *token*, or None if it is invalid, expired or foreign."""
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=ISSUER,
        )
    except JWTError:
        return None
    return claims.get("sub")
