"""Sync trigger endpoints."""

from fastapi import APIRouter, Depends

from ..dependencies import get_orchestrator
from ..models import SyncReportResponse, SyncResultResponse
from ...orchestrator import SyncOrchestrator

router = APIRouter()


@router.post("", response_model=SyncReportResponse)
def sync_all(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Run a full resync of every configured target."""
    return orchestrator.sync_all().to_dict()


@router.post("/taxonomies/{slug}", response_model=SyncResultResponse)
def sync_taxonomy(slug: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Resync one taxonomy."""
    return orchestrator.sync_taxonomy(slug).to_dict()


@router.post("/content-types/{content_type}", response_model=SyncResultResponse)
def sync_content_type(content_type: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Resync every published item of one content type."""
    return orchestrator.sync_content_type(content_type).to_dict()


@router.post("/items/{item_id}", response_model=SyncResultResponse)
def sync_item(item_id: int, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Upsert a single item."""
    return orchestrator.sync_item(item_id).to_dict()


@router.delete("/items/{content_type}/{item_id}", response_model=SyncResultResponse)
def delete_item(content_type: str, item_id: int, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Delete a single item's document."""
    return orchestrator.delete_item(item_id, content_type).to_dict()
