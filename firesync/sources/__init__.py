"""Content system adapters."""

from .base import ContentSource, CustomFieldsPlugin
from .memory import InMemoryContentSource, InMemoryCustomFields, load_snapshot

__all__ = [
    "ContentSource",
    "CustomFieldsPlugin",
    "InMemoryContentSource",
    "InMemoryCustomFields",
    "load_snapshot",
]
