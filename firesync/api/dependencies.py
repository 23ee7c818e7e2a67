"""Request dependencies."""

from fastapi import HTTPException, Request

from ..orchestrator import SyncOrchestrator


def get_orchestrator(request: Request) -> SyncOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Sync is not configured")
    return orchestrator
