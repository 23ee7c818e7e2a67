"""Mapping of content records into sync documents."""

import json
import logging
from typing import Any, Dict, List, Optional

from ..models.document import MappingDegraded, SyncDocument, item_path, taxonomy_path
from ..models.entity import ContentItem, Term
from ..models.target import (
    ContentTypeTarget,
    FieldDescriptor,
    FieldKind,
    OrderDirection,
    TaxonomyTarget,
)
from ..sources.base import ContentSource, CustomFieldsPlugin
from .codec import normalize_value

logger = logging.getLogger(__name__)

_MISSING = object()


def decode_meta_value(value: Any) -> Any:
    """Turn JSON-encoded strings back into structures, leaving other strings alone."""
    if not isinstance(value, str):
        return normalize_value(value)
    stripped = value.strip()
    if not stripped:
        return value
    try:
        return normalize_value(json.loads(stripped))
    except ValueError:
        return value


def sort_terms(
    terms: List[Term],
    order_field: str = "name",
    direction: OrderDirection = OrderDirection.ASC
) -> List[Term]:
    """
    Sort terms by a field using plain string comparison.

    Terms that lack the field are compared by their name instead. The sort
    is stable, so equal keys keep their source order in either direction.
    """
    def sort_key(term: Term) -> str:
        value = term.get_property(order_field, _MISSING)
        if value is _MISSING or value is None:
            value = term.name
        return str(value)

    return sorted(terms, key=sort_key, reverse=direction == OrderDirection.DESC)


class RecordMapper:
    """
    Builds sync documents from content records.

    Each selected field is resolved independently. A field that cannot be
    resolved becomes None and is noted on the document's MappingDegraded
    signal; the rest of the document is still built.
    """

    def __init__(
        self,
        source: ContentSource,
        custom_fields: Optional[CustomFieldsPlugin] = None
    ):
        """
        Initialize the mapper.

        Args:
            source: Content source to read values from
            custom_fields: Optional custom-fields plugin
        """
        self.source = source
        self.custom_fields = custom_fields

    def map_item(self, item: ContentItem, target: ContentTypeTarget) -> SyncDocument:
        """
        Map a content item using the target's field selection.

        Args:
            item: Content item
            target: Content type target with fields and rename map

        Returns:
            SyncDocument keyed by destination field name
        """
        degraded = MappingDegraded(entity=f"{item.content_type}/{item.id}")
        fields: Dict[str, Any] = {}

        for descriptor in target.fields:
            destination = target.destination_key(descriptor)
            try:
                value = self._resolve(item, descriptor, degraded)
            except Exception as e:
                logger.debug(f"Resolving {descriptor.name} on {degraded.entity} failed", exc_info=True)
                degraded.add(descriptor.name, f"{type(e).__name__}: {e}")
                value = None
            fields[destination] = value

        if degraded:
            logger.warning(
                f"Mapped {degraded.entity} with unresolved fields: {', '.join(degraded.fields)}"
            )

        return SyncDocument(
            path=item_path(item.content_type, item.id),
            fields=fields,
            degraded=degraded if degraded else None,
        )

    def _resolve(self, item: ContentItem, descriptor: FieldDescriptor, degraded: MappingDegraded) -> Any:
        """Resolve one field; exceptions are handled by the caller."""
        kind = descriptor.kind

        if kind == FieldKind.INTRINSIC:
            if not item.has_property(descriptor.key):
                degraded.add(descriptor.name, "property not found")
                return None
            return normalize_value(item.get_property(descriptor.key))

        if kind == FieldKind.METADATA:
            return normalize_value(self.source.get_meta(item.id, descriptor.key))

        if kind == FieldKind.TAXONOMY:
            terms = self.source.get_item_terms(item.id, descriptor.key) or []
            return [
                {"term_id": term.term_id, "name": term.name, "slug": term.slug}
                for term in terms
            ]

        if kind == FieldKind.CUSTOM_FIELD:
            if self.custom_fields is None or not self.custom_fields.is_active():
                degraded.add(descriptor.name, "custom fields plugin inactive")
                return None
            return normalize_value(self.custom_fields.get_field_value(item.id, descriptor.key))

        if kind == FieldKind.PRIMARY_IMAGE:
            image = self.source.get_primary_image(item.id)
            return image.to_dict() if image else None

        degraded.add(descriptor.name, f"unsupported field kind {kind}")
        return None

    def map_term(self, term: Term, degraded: Optional[MappingDegraded] = None) -> Dict[str, Any]:
        """
        Map one term, including its metadata as a nested map.

        An empty metadata set maps to an empty map.
        """
        try:
            raw_meta = self.source.get_term_meta(term.term_id) or {}
        except Exception as e:
            logger.warning(f"Could not read meta of term {term.term_id}: {e}")
            if degraded is not None:
                degraded.add(f"terms.{term.term_id}.meta", f"{type(e).__name__}: {e}")
            raw_meta = {}

        return {
            "term_id": term.term_id,
            "name": term.name,
            "slug": term.slug,
            "description": term.description,
            "parent": term.parent,
            "count": term.count,
            "meta": {str(key): decode_meta_value(value) for key, value in raw_meta.items()},
        }

    def map_taxonomy(self, target: TaxonomyTarget, terms: List[Term]) -> SyncDocument:
        """
        Map a whole taxonomy into its combined document.

        Args:
            target: Taxonomy target with ordering settings
            terms: All terms of the taxonomy

        Returns:
            SyncDocument with "taxonomy" and the ordered "terms" list
        """
        degraded = MappingDegraded(entity=f"taxonomy/{target.slug}")
        ordered = sort_terms(terms, target.order_field, target.order_direction)

        fields = {
            "taxonomy": target.slug,
            "terms": [self.map_term(term, degraded) for term in ordered],
        }

        return SyncDocument(
            path=taxonomy_path(target.slug),
            fields=fields,
            degraded=degraded if degraded else None,
        )
