"""Content records as read from the content system."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


PUBLISHED_STATUS = "publish"


@dataclass
class Term:
    """One term of a taxonomy."""
    term_id: int
    taxonomy: str
    name: str
    slug: str = ""
    description: str = ""
    parent: int = 0
    count: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)  # Source-specific properties

    def get_property(self, name: str, default: Any = None) -> Any:
        """Look up a property by name, falling back to the extra properties."""
        if name in ("term_id", "taxonomy", "name", "slug", "description", "parent", "count"):
            return getattr(self, name)
        return self.extra.get(name, default)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], taxonomy: Optional[str] = None) -> "Term":
        """Create from dictionary representation."""
        known = {"term_id", "id", "taxonomy", "name", "slug", "description", "parent", "count", "meta"}
        return cls(
            term_id=int(data.get("term_id", data.get("id", 0))),
            taxonomy=data.get("taxonomy") or taxonomy or "",
            name=data.get("name", ""),
            slug=data.get("slug", ""),
            description=data.get("description", ""),
            parent=int(data.get("parent", 0) or 0),
            count=int(data.get("count", 0) or 0),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class ContentItem:
    """A typed content record (post, page, custom type)."""
    id: int
    content_type: str
    status: str = PUBLISHED_STATUS
    properties: Dict[str, Any] = field(default_factory=dict)
    is_revision: bool = False

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISHED_STATUS

    def has_property(self, name: str) -> bool:
        return name in ("id", "content_type", "status") or name in self.properties

    def get_property(self, name: str, default: Any = None) -> Any:
        """Look up an intrinsic property by name."""
        if name == "id":
            return self.id
        if name == "content_type":
            return self.content_type
        if name == "status":
            return self.status
        return self.properties.get(name, default)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentItem":
        """Create from dictionary representation."""
        known = {"id", "content_type", "type", "status", "is_revision", "meta", "terms", "image", "custom_fields"}
        return cls(
            id=int(data["id"]),
            content_type=data.get("content_type") or data.get("type", ""),
            status=data.get("status", PUBLISHED_STATUS),
            properties={k: v for k, v in data.items() if k not in known},
            is_revision=bool(data.get("is_revision", False)),
        )


@dataclass
class ImageInfo:
    """Descriptor of an item's primary image."""
    id: int
    url: str
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class CustomFieldInfo:
    """A field exposed by the custom-fields plugin for a content type."""
    key: str
    label: str = ""
    type: str = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "label": self.label, "type": self.type}
