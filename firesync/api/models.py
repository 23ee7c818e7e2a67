"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# Request Models
class ConnectionTestRequest(BaseModel):
    write_test: bool = False


# Response Models
class SyncResultResponse(BaseModel):
    target: str
    action: str
    success: bool
    message: str = ""
    entity_id: Optional[str] = None
    documents_written: int = 0
    documents_deleted: int = 0
    documents_failed: int = 0
    degraded: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None


class SyncReportResponse(BaseModel):
    success: bool
    connection_ok: Optional[bool] = None
    message: str = ""
    pruned_taxonomies: List[str] = Field(default_factory=list)
    pruned_content_types: List[str] = Field(default_factory=list)
    documents_written: int = 0
    documents_failed: int = 0
    results: List[SyncResultResponse] = Field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None


class ConnectionTestResponse(BaseModel):
    success: bool
    transport: str
    project_id: str
    database_id: str
    emulator: bool = False
    error: Optional[str] = None


class TargetStatus(BaseModel):
    exists: bool
    terms: Optional[int] = None
    items: Optional[int] = None
    published: Optional[int] = None
    fields: List[str] = Field(default_factory=list)


class StatusResponse(BaseModel):
    transport: Dict[str, Any]
    taxonomies: Dict[str, TargetStatus] = Field(default_factory=dict)
    content_types: Dict[str, TargetStatus] = Field(default_factory=dict)
    connection: Dict[str, Any] = Field(default_factory=dict)
