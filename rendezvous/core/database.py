"""
MongoDB connection management using Motor (async driver).

Architecture decision: single DatabaseClient instance shared across all
requests via a module-level singleton. FastAPI's dependency injection
(get_db) gives routes clean access without importing the singleton directly.
Services never touch the singleton: they receive the database handle from
the dependency layer (see rendezvous/dependencies.py).

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown. Indexes that back the exclusivity rules (one pending
request per user, one meeting per participant, one reaction per pair)
are created right after the connection is validated.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from rendezvous.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Motor client plus the selected database; both None in degraded mode."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


db_client = DatabaseClient()


def _client_options(uri: str) -> dict:
    options = {
        "serverSelectionTimeoutMS": settings.mongo_timeout_ms,
        # Timestamps come back timezone-aware (UTC), same as utcnow() writes them.
        "tz_aware": True,
    }
    # Atlas (SRV / TLS) needs a CA bundle the default ssl context may lack.
    if uri.startswith("mongodb+srv://") or "tls=true" in uri.lower():
        options["tlsCAFile"] = certifi.where()
    return options


async def connect_to_mongo() -> None:
    """
    Connect, ping and ensure indexes. Called once from the lifespan.

    Any failure leaves the app in degraded mode: /health still answers
    and every database-backed route returns 503.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(settings.mongo_uri, **_client_options(settings.mongo_uri))
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        await ensure_indexes(db_client.db)
        logger.info("MongoDB ready (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning("MongoDB unavailable at startup: %s. Running in degraded mode.", exc)
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


async def ensure_indexes(db) -> None:
    """
    Create the indexes the services rely on. Idempotent.

    The unique indexes are what make concurrent duplicates lose with a
    DuplicateKeyError instead of silently creating a second document.
    """
    await db["users"].create_index([("username", ASCENDING)], unique=True)
    await db["meeting_requests"].create_index([("requester", ASCENDING)], unique=True)
    # Multikey unique index: a user id may appear in at most one meeting,
    # whether as host or as guest.
    await db["meetings"].create_index([("participants", ASCENDING)], unique=True)
    await db["collaborations"].create_index([("member_key", ASCENDING)])
    await db["collaborations"].create_index([("pending", ASCENDING)])
    await db["post_pieces"].create_index([("author", ASCENDING)])
    await db["posts"].create_index([("pieces", ASCENDING)])
    await db["markers"].create_index([("layer", ASCENDING), ("poi", ASCENDING)])
    await db["markers"].create_index([("layer", ASCENDING), ("date_updated", DESCENDING)])
    await db["reactions"].create_index([("by", ASCENDING), ("to", ASCENDING)], unique=True)
    await db["heat_scores"].create_index([("kind", ASCENDING), ("key", ASCENDING)], unique=True)
    logger.info("MongoDB indexes ensured")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable; the service dependencies
    turn that into a 503.
    """
    return db_client.db


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
