"""Result models for sync operations."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


class SyncAction(str, Enum):
    """What a sync operation did for an entity."""
    UPSERT = "upsert"
    DELETE = "delete"
    SKIP = "skip"


@dataclass
class SyncResult:
    """Outcome of syncing one target or one entity."""
    target: str
    action: SyncAction = SyncAction.UPSERT
    success: bool = True
    message: str = ""
    entity_id: Optional[str] = None
    documents_written: int = 0
    documents_deleted: int = 0
    documents_failed: int = 0
    degraded: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_error(self, message: str, entity_id: Optional[str] = None, **details: Any) -> None:
        """Record a failure and mark the result unsuccessful."""
        error = {"error": message, "entity_id": entity_id}
        error.update(details)
        self.errors.append(error)
        self.success = False

    @classmethod
    def skipped(cls, target: str, message: str, entity_id: Optional[str] = None) -> "SyncResult":
        return cls(target=target, action=SyncAction.SKIP, success=True, message=message, entity_id=entity_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "target": self.target,
            "action": self.action.value,
            "success": self.success,
            "message": self.message,
            "entity_id": self.entity_id,
            "documents_written": self.documents_written,
            "documents_deleted": self.documents_deleted,
            "documents_failed": self.documents_failed,
            "degraded": self.degraded,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class SyncReport:
    """Aggregate outcome of a full resync."""
    results: List[SyncResult] = field(default_factory=list)
    pruned_taxonomies: List[str] = field(default_factory=list)
    pruned_content_types: List[str] = field(default_factory=list)
    connection_ok: Optional[bool] = None
    message: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        if self.connection_ok is False:
            return False
        return all(r.success for r in self.results)

    @property
    def pruned_targets(self) -> List[str]:
        return self.pruned_taxonomies + self.pruned_content_types

    @property
    def documents_written(self) -> int:
        return sum(r.documents_written for r in self.results)

    @property
    def documents_failed(self) -> int:
        return sum(r.documents_failed for r in self.results)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "connection_ok": self.connection_ok,
            "message": self.message,
            "pruned_taxonomies": self.pruned_taxonomies,
            "pruned_content_types": self.pruned_content_types,
            "documents_written": self.documents_written,
            "documents_failed": self.documents_failed,
            "results": [r.to_dict() for r in self.results],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
