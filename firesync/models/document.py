"""Document models exchanged between the mapper, orchestrator and transports."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class MappingDegraded:
    """
    Signal that one or more fields of an entity resolved to None.

    Not an error: the document is still complete and gets written.
    """
    entity: str
    fields: Dict[str, str] = field(default_factory=dict)  # field name -> reason

    def add(self, field_name: str, reason: str) -> None:
        self.fields[field_name] = reason

    def __bool__(self) -> bool:
        return bool(self.fields)

    def to_dict(self) -> Dict[str, Any]:
        return {"entity": self.entity, "fields": dict(self.fields)}


@dataclass
class SyncDocument:
    """A normalized document ready to be encoded and written."""
    path: str
    fields: Dict[str, Any] = field(default_factory=dict)
    degraded: Optional[MappingDegraded] = None

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "fields": self.fields,
            "degraded": self.degraded.to_dict() if self.degraded else None,
        }


@dataclass
class RemoteDocument:
    """Result of reading a document; `exists` is False when not found."""
    path: str
    exists: bool = False
    fields: Dict[str, Any] = field(default_factory=dict)
    update_time: Optional[str] = None

    @classmethod
    def missing(cls, path: str) -> "RemoteDocument":
        return cls(path=path, exists=False)


def taxonomy_path(slug: str) -> str:
    """Document path of a taxonomy's combined document."""
    return f"taxonomies/{slug}"


def item_path(content_type: str, item_id: Any) -> str:
    """Document path of a single content item."""
    return f"post_types/{content_type}/posts/{item_id}"


def split_path(path: str) -> List[str]:
    """Split a document path into its segments."""
    return [segment for segment in path.strip("/").split("/")]


def validate_document_path(path: str) -> Optional[str]:
    """
    Check a slash-delimited document path.

    Returns an error message, or None when the path is valid.
    """
    if not path or not path.strip("/"):
        return "Document path must not be empty"
    segments = split_path(path)
    if any(not s.strip() for s in segments):
        return f"Document path has an empty segment: {path!r}"
    if len(segments) % 2 != 0:
        return f"Document path must have an even number of segments: {path!r}"
    return None
