"""In-memory content source loaded from a JSON snapshot."""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .base import ContentSource, CustomFieldsPlugin
from ..models.entity import ContentItem, CustomFieldInfo, ImageInfo, Term, PUBLISHED_STATUS

logger = logging.getLogger(__name__)


class InMemoryContentSource(ContentSource):
    """
    Content source backed by plain dictionaries.

    Snapshot layout:

        {
            "taxonomies": {"category": [{"term_id": 1, "name": "News", "meta": {...}}]},
            "content_types": {"post": [{"id": 10, "title": "Hello", "meta": {...},
                                        "terms": {"category": [1]}, "image": {...}}]}
        }

    Items may also carry "custom_fields", which InMemoryCustomFields reads.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._taxonomies: Dict[str, Dict[int, Term]] = {}
        self._term_meta: Dict[int, Dict[str, Any]] = {}
        self._content_types: Dict[str, List[int]] = {}
        self._items: Dict[int, ContentItem] = {}
        self._item_meta: Dict[int, Dict[str, Any]] = {}
        self._item_terms: Dict[int, Dict[str, List[int]]] = {}
        self._images: Dict[int, ImageInfo] = {}
        self._custom_values: Dict[int, Dict[str, Any]] = {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryContentSource":
        """Build a source from a snapshot dictionary."""
        source = cls()
        for slug, terms in (data.get("taxonomies") or {}).items():
            source.register_taxonomy(slug)
            for term_data in terms or []:
                source.add_term(slug, term_data)

        for content_type, items in (data.get("content_types") or {}).items():
            source.register_content_type(content_type)
            for item_data in items or []:
                item_data = dict(item_data)
                item_data.setdefault("content_type", content_type)
                source.add_item(item_data)

        return source

    # Mutation helpers used by adapters and tests

    def register_taxonomy(self, slug: str) -> None:
        with self._lock:
            self._taxonomies.setdefault(slug, {})

    def unregister_taxonomy(self, slug: str) -> None:
        with self._lock:
            for term_id in self._taxonomies.pop(slug, {}):
                self._term_meta.pop(term_id, None)

    def register_content_type(self, content_type: str) -> None:
        with self._lock:
            self._content_types.setdefault(content_type, [])

    def unregister_content_type(self, content_type: str) -> None:
        with self._lock:
            for item_id in self._content_types.pop(content_type, []):
                self._forget_item(item_id)

    def add_term(self, taxonomy: str, data: Dict[str, Any]) -> Term:
        """Add or replace a term. `meta` in data becomes the term's metadata."""
        term = Term.from_dict(data, taxonomy=taxonomy)
        with self._lock:
            self.register_taxonomy(taxonomy)
            self._taxonomies[taxonomy][term.term_id] = term
            self._term_meta[term.term_id] = dict(data.get("meta") or {})
        return term

    def remove_term(self, taxonomy: str, term_id: int) -> None:
        with self._lock:
            self._taxonomies.get(taxonomy, {}).pop(term_id, None)
            self._term_meta.pop(term_id, None)

    def add_item(self, data: Dict[str, Any]) -> ContentItem:
        """
        Add or replace an item.

        Args:
            data: Item properties plus optional "meta", "terms" (taxonomy ->
                term IDs), "image" and "custom_fields"
        """
        item = ContentItem.from_dict(data)
        with self._lock:
            self.register_content_type(item.content_type)
            if item.id in self._items:
                self._forget_item(item.id)
            self._items[item.id] = item
            self._content_types[item.content_type].append(item.id)
            self._item_meta[item.id] = dict(data.get("meta") or {})
            self._item_terms[item.id] = {
                slug: [int(t) for t in term_ids]
                for slug, term_ids in (data.get("terms") or {}).items()
            }
            if data.get("image"):
                image = data["image"]
                self._images[item.id] = ImageInfo(
                    id=int(image["id"]),
                    url=image.get("url", ""),
                    width=image.get("width"),
                    height=image.get("height"),
                )
            if data.get("custom_fields") is not None:
                self._custom_values[item.id] = dict(data["custom_fields"])
        return item

    def remove_item(self, item_id: int) -> None:
        with self._lock:
            self._forget_item(item_id)

    def set_status(self, item_id: int, status: str) -> None:
        with self._lock:
            self._items[item_id].status = status

    def set_meta(self, item_id: int, key: str, value: Any) -> None:
        with self._lock:
            self._item_meta.setdefault(item_id, {})[key] = value

    def set_primary_image(self, item_id: int, image: Optional[ImageInfo]) -> None:
        with self._lock:
            if image is None:
                self._images.pop(item_id, None)
            else:
                self._images[item_id] = image

    def _forget_item(self, item_id: int) -> None:
        item = self._items.pop(item_id, None)
        if item and item_id in self._content_types.get(item.content_type, []):
            self._content_types[item.content_type].remove(item_id)
        self._item_meta.pop(item_id, None)
        self._item_terms.pop(item_id, None)
        self._images.pop(item_id, None)
        self._custom_values.pop(item_id, None)

    # ContentSource

    def list_taxonomies(self) -> List[str]:
        with self._lock:
            return list(self._taxonomies)

    def list_content_types(self) -> List[str]:
        with self._lock:
            return list(self._content_types)

    def get_terms(self, taxonomy: str) -> List[Term]:
        with self._lock:
            return [copy.deepcopy(t) for t in self._taxonomies.get(taxonomy, {}).values()]

    def get_term_meta(self, term_id: int) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._term_meta.get(term_id, {}))

    def get_items(self, content_type: str, status: Optional[str] = PUBLISHED_STATUS) -> List[ContentItem]:
        with self._lock:
            items = [self._items[i] for i in self._content_types.get(content_type, [])]
            return [copy.deepcopy(i) for i in items if status is None or i.status == status]

    def get_item(self, item_id: int) -> Optional[ContentItem]:
        with self._lock:
            item = self._items.get(item_id)
            return copy.deepcopy(item) if item else None

    def get_meta(self, item_id: int, key: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._item_meta.get(item_id, {}).get(key))

    def get_item_terms(self, item_id: int, taxonomy: str) -> List[Term]:
        with self._lock:
            terms = self._taxonomies.get(taxonomy, {})
            term_ids = self._item_terms.get(item_id, {}).get(taxonomy, [])
            return [copy.deepcopy(terms[t]) for t in term_ids if t in terms]

    def get_primary_image(self, item_id: int) -> Optional[ImageInfo]:
        with self._lock:
            return self._images.get(item_id)

    def list_meta_keys(self, content_type: str) -> List[str]:
        with self._lock:
            keys = set()
            for item_id in self._content_types.get(content_type, []):
                keys.update(self._item_meta.get(item_id, {}))
            return sorted(keys)

    def list_item_properties(self, content_type: str) -> List[str]:
        with self._lock:
            names = {"id", "status"}
            for item_id in self._content_types.get(content_type, []):
                names.update(self._items[item_id].properties)
            return sorted(names)

    def custom_field_values(self, item_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            values = self._custom_values.get(item_id)
            return copy.deepcopy(values) if values is not None else None


class InMemoryCustomFields(CustomFieldsPlugin):
    """Custom-fields plugin reading values stored with InMemoryContentSource items."""

    def __init__(
        self,
        source: InMemoryContentSource,
        fields_by_type: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        active: bool = True
    ):
        self.source = source
        self.active = active
        self.fields_by_type = {
            content_type: [CustomFieldInfo(**f) for f in fields]
            for content_type, fields in (fields_by_type or {}).items()
        }

    @classmethod
    def from_dict(cls, source: InMemoryContentSource, data: Optional[Dict[str, Any]]) -> "InMemoryCustomFields":
        """Build from the snapshot's "custom_fields" section."""
        data = data or {}
        return cls(
            source=source,
            fields_by_type=data.get("fields") or {},
            active=bool(data.get("active", True)),
        )

    def is_active(self) -> bool:
        return self.active

    def get_field_value(self, item_id: int, field_key: str) -> Any:
        values = self.source.custom_field_values(item_id) or {}
        return values.get(field_key)

    def list_fields_for_type(self, content_type: str) -> List[CustomFieldInfo]:
        return list(self.fields_by_type.get(content_type, []))


def load_snapshot(path: Union[str, Path]) -> Tuple[InMemoryContentSource, InMemoryCustomFields]:
    """Load a content snapshot file into a source and its custom-fields plugin."""
    path = Path(path)
    logger.info(f"Loading content snapshot: {path}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    source = InMemoryContentSource.from_dict(data)
    return source, InMemoryCustomFields.from_dict(source, data.get("custom_fields"))
