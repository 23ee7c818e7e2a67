"""FastAPI application for triggering syncs over HTTP."""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routes import connection, sync
from ..exceptions import AuthExchangeError, ConfigurationError, CredentialError, FiresyncError
from ..models.config import JsonConfigStore
from ..orchestrator import SyncOrchestrator
from ..sources.memory import load_snapshot
from ..transports import create_transport

logger = logging.getLogger(__name__)

CONFIG_ENV = "FIRESYNC_CONFIG"
CONTENT_ENV = "FIRESYNC_CONTENT"


def create_app(orchestrator: Optional[SyncOrchestrator] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        orchestrator: Orchestrator the endpoints run against; endpoints
            answer 503 until one is set on app.state
    """
    app = FastAPI(
        title="Firestore Content Sync API",
        description="Trigger and inspect content sync to Firestore",
        version="0.1.0",
    )
    app.state.orchestrator = orchestrator

    # Include routers
    app.include_router(sync.router, prefix="/api/sync", tags=["sync"])
    app.include_router(connection.router, prefix="/api", tags=["connection"])

    @app.exception_handler(FiresyncError)
    async def firesync_error_handler(request: Request, exc: FiresyncError):
        if isinstance(exc, ConfigurationError):
            status_code = 400
        elif isinstance(exc, (CredentialError, AuthExchangeError)):
            status_code = 502
        else:
            status_code = 500
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "configured": app.state.orchestrator is not None}

    return app


def from_environment() -> FastAPI:
    """
    Build the application from FIRESYNC_CONFIG and FIRESYNC_CONTENT.

    FIRESYNC_CONFIG defaults to firesync.json; FIRESYNC_CONTENT points at a
    JSON content snapshot. Without a snapshot the app stays unconfigured and
    the sync endpoints answer 503.
    """
    content_path = os.environ.get(CONTENT_ENV)
    if not content_path:
        logger.warning(f"{CONTENT_ENV} is not set, sync endpoints are disabled")
        return create_app()

    store = JsonConfigStore(os.environ.get(CONFIG_ENV, "firesync.json"))
    config = store.load()
    source, custom_fields = load_snapshot(content_path)
    transport = create_transport(config.connection)
    return create_app(SyncOrchestrator(store, source, transport, custom_fields=custom_fields))
