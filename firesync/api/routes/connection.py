"""Connection test and status endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends

from ..dependencies import get_orchestrator
from ..models import ConnectionTestRequest, ConnectionTestResponse, StatusResponse
from ...orchestrator import SyncOrchestrator

router = APIRouter()


@router.post("/connection/test", response_model=ConnectionTestResponse)
def test_connection(
    request: Optional[ConnectionTestRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Probe the document store, optionally with a write test."""
    write_test = request.write_test if request else False
    success = orchestrator.probe.check(write_test=write_test)
    info = orchestrator.transport.describe()
    return ConnectionTestResponse(
        success=success,
        transport=info["transport"],
        project_id=info["project_id"],
        database_id=info["database_id"],
        emulator=bool(info.get("emulator", False)),
        error=orchestrator.probe.last_error,
    )


@router.get("/status", response_model=StatusResponse)
def get_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Configured targets with their term and item counts."""
    stats = orchestrator.collect_stats()
    return StatusResponse(transport=orchestrator.transport.describe(), **stats)
