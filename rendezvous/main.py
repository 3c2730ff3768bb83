"""
Rendezvous API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection lifecycle.

Extension points:
  - Add new route groups to ROUTERS below
  - Add new middleware in the middleware block
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rendezvous.core import database
from rendezvous.core.config import settings
from rendezvous.core.errors import DomainError, domain_error_handler
from rendezvous.core.rate_limit import limiter
from rendezvous.routes.auth import router as auth_router
from rendezvous.routes.collaboration import router as collaboration_router
from rendezvous.routes.health import VERSION
from rendezvous.routes.health import router as health_router
from rendezvous.routes.heatmap import router as heatmap_router
from rendezvous.routes.meetings import router as meetings_router
from rendezvous.routes.posts import router as posts_router
from rendezvous.routes.reactions import router as reactions_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    Code before `yield` runs on startup; code after runs on shutdown.
    Looked up through the module so tests can patch them.
    """
    logger.info("Starting Rendezvous API (env: %s)", settings.environment)
    await database.connect_to_mongo()
    yield
    logger.info("Shutting down Rendezvous API")
    await database.close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Rendezvous API",
    description=(
        "Meet nearby people, write posts together once met, "
        "and follow how each neighbourhood feels."
    ),
    version=VERSION,
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Errors ────────────────────────────────────────────────────────────────────
# Domain errors carry a kind + the offending ids; the handler picks the
# status code and renders { detail, error, context }.
app.add_exception_handler(DomainError, domain_error_handler)

# ─── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
ROUTERS = [
    health_router,
    auth_router,
    meetings_router,
    collaboration_router,
    posts_router,
    reactions_router,
    heatmap_router,
]

for router in ROUTERS:
    app.include_router(router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Rendezvous API",
        "version": VERSION,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("rendezvous.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
