"""Sync target and field descriptor models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


META_PREFIX = "meta_"
CUSTOM_FIELD_PREFIX = "acf_"
TAXONOMY_PREFIXES = ("tax_", "taxonomy_")
PRIMARY_IMAGE_FIELD = "featured_image"


class FieldKind(str, Enum):
    """Categories of values a field descriptor can extract."""
    INTRINSIC = "intrinsic"
    METADATA = "metadata"
    TAXONOMY = "taxonomy"
    CUSTOM_FIELD = "custom_field"
    PRIMARY_IMAGE = "primary_image"


class OrderDirection(str, Enum):
    """Sort direction for taxonomy terms."""
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: Any) -> "OrderDirection":
        if isinstance(value, OrderDirection):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid order direction: {value!r} (expected 'asc' or 'desc')")


@dataclass(frozen=True)
class FieldDescriptor:
    """
    A parsed field selection.

    `name` is the identifier as configured (e.g. "meta_price"); it is the
    key the rename map is looked up by and the default destination key.
    `key` is the identifier stripped of its category prefix.
    """
    kind: FieldKind
    name: str
    key: str

    @classmethod
    def parse(cls, identifier: str) -> "FieldDescriptor":
        """Parse a configured field identifier into a descriptor."""
        identifier = identifier.strip()
        if not identifier:
            raise ValueError("Field identifier must not be empty")

        if identifier == PRIMARY_IMAGE_FIELD:
            return cls(FieldKind.PRIMARY_IMAGE, identifier, identifier)

        if identifier.startswith(META_PREFIX) and len(identifier) > len(META_PREFIX):
            return cls(FieldKind.METADATA, identifier, identifier[len(META_PREFIX):])

        if identifier.startswith(CUSTOM_FIELD_PREFIX) and len(identifier) > len(CUSTOM_FIELD_PREFIX):
            return cls(FieldKind.CUSTOM_FIELD, identifier, identifier[len(CUSTOM_FIELD_PREFIX):])

        # "taxonomy_" is checked before "tax_" so the longer prefix wins
        for prefix in sorted(TAXONOMY_PREFIXES, key=len, reverse=True):
            if identifier.startswith(prefix) and len(identifier) > len(prefix):
                return cls(FieldKind.TAXONOMY, identifier, identifier[len(prefix):])

        return cls(FieldKind.INTRINSIC, identifier, identifier)

    def __str__(self) -> str:
        return self.name


@dataclass
class TaxonomyTarget:
    """A taxonomy configured for sync as one combined document."""
    slug: str
    order_field: str = "name"
    order_direction: OrderDirection = OrderDirection.ASC

    @property
    def identifier(self) -> str:
        return self.slug

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "slug": self.slug,
            "order_field": self.order_field,
            "order_direction": self.order_direction.value,
        }

    @classmethod
    def from_dict(cls, data: Any, defaults: Optional[Dict[str, Any]] = None) -> "TaxonomyTarget":
        """Create from a dict, or from a bare slug string."""
        defaults = defaults or {}
        if isinstance(data, str):
            data = {"slug": data}
        return cls(
            slug=data["slug"],
            order_field=data.get("order_field") or defaults.get("order_field", "name"),
            order_direction=OrderDirection.parse(
                data.get("order_direction") or defaults.get("order_direction", "asc")
            ),
        )


@dataclass
class ContentTypeTarget:
    """A content type configured for per-item sync."""
    content_type: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    field_mapping: Dict[str, str] = field(default_factory=dict)  # source name -> destination name

    @property
    def identifier(self) -> str:
        return self.content_type

    def destination_key(self, descriptor: FieldDescriptor) -> str:
        """Get the destination key for a field, honouring the rename map."""
        return self.field_mapping.get(descriptor.name) or descriptor.name

    def selects(self, kind: FieldKind, key: Optional[str] = None) -> bool:
        """Check whether any selected field has this kind (and key)."""
        return any(
            f.kind == kind and (key is None or f.key == key)
            for f in self.fields
        )

    def set_fields(self, identifiers: List[str]) -> None:
        """Replace the selected fields, keeping first-seen order."""
        self.fields = []
        self.add_fields(identifiers)

    def add_fields(self, identifiers: List[str]) -> None:
        """Append fields that are not already selected."""
        present = {f.name for f in self.fields}
        for identifier in identifiers:
            descriptor = FieldDescriptor.parse(identifier)
            if descriptor.name not in present:
                self.fields.append(descriptor)
                present.add(descriptor.name)

    def remove_fields(self, identifiers: List[str]) -> None:
        """Drop the named fields."""
        names = {i.strip() for i in identifiers}
        self.fields = [f for f in self.fields if f.name not in names]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "content_type": self.content_type,
            "fields": [f.name for f in self.fields],
            "field_mapping": dict(self.field_mapping),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ContentTypeTarget":
        """Create from a dict, or from a bare content type string."""
        if isinstance(data, str):
            data = {"content_type": data}
        target = cls(
            content_type=data["content_type"],
            field_mapping=dict(data.get("field_mapping") or {}),
        )
        target.set_fields(list(data.get("fields") or []))
        return target
