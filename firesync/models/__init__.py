"""Data models for the sync core."""

from .config import (
    ConfigStore,
    ConnectionSettings,
    EmulatorSettings,
    JsonConfigStore,
    MemoryConfigStore,
    SyncConfig,
)
from .document import (
    MappingDegraded,
    RemoteDocument,
    SyncDocument,
    item_path,
    taxonomy_path,
)
from .entity import (
    ContentItem,
    CustomFieldInfo,
    ImageInfo,
    Term,
)
from .result import (
    SyncAction,
    SyncReport,
    SyncResult,
)
from .target import (
    ContentTypeTarget,
    FieldDescriptor,
    FieldKind,
    OrderDirection,
    TaxonomyTarget,
)

__all__ = [
    "ConfigStore",
    "ConnectionSettings",
    "EmulatorSettings",
    "JsonConfigStore",
    "MemoryConfigStore",
    "SyncConfig",
    "MappingDegraded",
    "RemoteDocument",
    "SyncDocument",
    "item_path",
    "taxonomy_path",
    "ContentItem",
    "CustomFieldInfo",
    "ImageInfo",
    "Term",
    "SyncAction",
    "SyncReport",
    "SyncResult",
    "ContentTypeTarget",
    "FieldDescriptor",
    "FieldKind",
    "OrderDirection",
    "TaxonomyTarget",
]
