"""Interfaces to the content system and its custom-fields plugin."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.entity import ContentItem, CustomFieldInfo, ImageInfo, Term, PUBLISHED_STATUS


class ContentSource(ABC):
    """
    Read access to the content system.

    Adapters wrap a concrete CMS. Every method returns current state; the
    sync core never relies on event payloads.
    """

    name = "base"

    @abstractmethod
    def list_taxonomies(self) -> List[str]:
        """Slugs of all registered taxonomies."""
        pass

    @abstractmethod
    def list_content_types(self) -> List[str]:
        """Slugs of all registered content types."""
        pass

    def taxonomy_exists(self, slug: str) -> bool:
        return slug in self.list_taxonomies()

    def content_type_exists(self, content_type: str) -> bool:
        return content_type in self.list_content_types()

    @abstractmethod
    def get_terms(self, taxonomy: str) -> List[Term]:
        """All terms of a taxonomy, including empty ones."""
        pass

    @abstractmethod
    def get_term_meta(self, term_id: int) -> Dict[str, Any]:
        """All metadata of a term, as stored (values may be JSON text)."""
        pass

    @abstractmethod
    def get_items(self, content_type: str, status: Optional[str] = PUBLISHED_STATUS) -> List[ContentItem]:
        """
        Items of a content type.

        Args:
            content_type: Content type slug
            status: Only return items with this status; None for all
        """
        pass

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[ContentItem]:
        """Fetch one item by ID, or None if it does not exist."""
        pass

    @abstractmethod
    def get_meta(self, item_id: int, key: str) -> Any:
        """Single metadata value of an item, or None when unset."""
        pass

    @abstractmethod
    def get_item_terms(self, item_id: int, taxonomy: str) -> List[Term]:
        """Terms of a taxonomy attached to an item."""
        pass

    @abstractmethod
    def get_primary_image(self, item_id: int) -> Optional[ImageInfo]:
        """The item's featured image, or None."""
        pass

    def list_meta_keys(self, content_type: str) -> List[str]:
        """Metadata keys in use for a content type."""
        return []

    def list_item_properties(self, content_type: str) -> List[str]:
        """Intrinsic property names available on items of a content type."""
        return ["id", "status"]


class CustomFieldsPlugin(ABC):
    """Optional plugin providing structured custom fields."""

    @abstractmethod
    def is_active(self) -> bool:
        pass

    @abstractmethod
    def get_field_value(self, item_id: int, field_key: str) -> Any:
        """Raw value of a custom field, or None if the key is unknown."""
        pass

    @abstractmethod
    def list_fields_for_type(self, content_type: str) -> List[CustomFieldInfo]:
        pass
