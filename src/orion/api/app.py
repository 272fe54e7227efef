"""Orion API — FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Security headers, origin enforcement and rate limiting (see ``orion.api.security``)
- Lifespan handler that expires pending approvals and closes tool clients
- Health endpoint at GET /api/health
- Approvals, sessions/chat/memory and SSE routers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orion.api.deps import wire_orion_dependencies
from orion.api.middleware import register_error_handlers
from orion.api.routers.approvals import router as approvals_router
from orion.api.routers.sessions import router as sessions_router
from orion.api.routers.sse import router as sse_router
from orion.api.security import install_security
from orion.config import OrionConfig, default_config
from orion.core.assistant import Orion

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle for the Orion service."""
    logger.info("Orion API starting")
    yield
    orion: Orion | None = getattr(app.state, "orion", None)
    if orion is not None:
        await orion.aclose()
    logger.info("Orion API stopped")


def create_app(
    config: OrionConfig | None = None,
    orion: Orion | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Parsed configuration; defaults to :func:`default_config`.
    orion:
        Pre-built service (tests inject one with fake tools). When omitted it
        is built from *config*.
    """
    config = config or default_config()
    orion = orion or Orion.from_config(config)

    app = FastAPI(
        title="Orion API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    install_security(app, config.server)

    app.include_router(approvals_router)
    app.include_router(sessions_router)
    app.include_router(sse_router)

    wire_orion_dependencies(app, orion)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
