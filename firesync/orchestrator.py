"""Sync orchestrator - decides what to push and when."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import FiresyncError, TransportError
from .models.config import ConfigStore, SyncConfig
from .models.document import SyncDocument, item_path, taxonomy_path
from .models.entity import ContentItem, PUBLISHED_STATUS
from .models.result import SyncAction, SyncReport, SyncResult
from .models.target import ContentTypeTarget, FieldKind, TaxonomyTarget
from .services.locks import KeyedLock
from .services.mapper import RecordMapper
from .services.probe import ConnectivityProbe
from .sources.base import ContentSource, CustomFieldsPlugin
from .transports.base import BaseTransport

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """
    Coordinates mapping and writing of content to the document store.

    Handles:
    - Full resync of every configured target, with stale target pruning
    - Per-taxonomy and per-content-type resync
    - Single-item upsert and delete
    - Content events from the CMS adapter (plain method calls)

    Configuration is read from the store at the start of every operation,
    so changes made by other processes are picked up without a restart.
    Writes to the same document path never overlap.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        source: ContentSource,
        transport: BaseTransport,
        custom_fields: Optional[CustomFieldsPlugin] = None,
        mapper: Optional[RecordMapper] = None,
        probe: Optional[ConnectivityProbe] = None,
        merge: bool = False
    ):
        """
        Initialize the orchestrator.

        Args:
            config_store: Where the sync configuration lives
            source: Content source adapter
            transport: Document store transport
            custom_fields: Optional custom-fields plugin
            mapper: Record mapper (built from source and plugin by default)
            probe: Connectivity probe used as the pre-flight check
            merge: Write documents with merge semantics instead of replacing them
        """
        self.config_store = config_store
        self.source = source
        self.transport = transport
        self.mapper = mapper or RecordMapper(source, custom_fields)
        self.probe = probe or ConnectivityProbe(transport)
        self.merge = merge
        self._path_locks = KeyedLock()

    def load_config(self) -> SyncConfig:
        return self.config_store.load()

    # Full resync

    def sync_all(self) -> SyncReport:
        """
        Resync every configured target.

        Stale targets are removed from the configuration first. Targets are
        then synced in parallel; one failing entity or target does not stop
        the others.

        Returns:
            SyncReport; `success` is True only if every remaining target succeeded
        """
        report = SyncReport(started_at=_now())
        config = self.load_config()

        logger.info("=== FULL RESYNC ===")
        report.pruned_taxonomies, report.pruned_content_types = self.prune_stale_targets(config)

        if config.preflight_check:
            report.connection_ok = self.probe.check()
            if not report.connection_ok:
                report.message = f"Connection check failed: {self.probe.last_error}"
                report.completed_at = _now()
                logger.error(report.message)
                return report

        jobs: List[Tuple[str, Callable[[], SyncResult]]] = []
        for taxonomy in config.taxonomies:
            jobs.append((f"taxonomy:{taxonomy.slug}", lambda t=taxonomy: self._sync_taxonomy_target(t)))
        for content_type in config.content_types:
            jobs.append((
                f"content_type:{content_type.content_type}",
                lambda t=content_type: self._sync_content_type_target(t),
            ))

        if jobs:
            workers = max(1, min(config.parallel_workers, len(jobs)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="firesync") as executor:
                futures = [(name, executor.submit(self._guard, name, job)) for name, job in jobs]
                for name, future in futures:
                    report.results.append(future.result())

        report.completed_at = _now()
        report.message = (
            f"Synced {len(report.results)} targets, {report.documents_written} documents written, "
            f"{report.documents_failed} failed"
        )
        if report.pruned_targets:
            report.message += f", pruned {', '.join(report.pruned_targets)}"

        log = logger.info if report.success else logger.error
        log(f"=== RESYNC {'COMPLETED' if report.success else 'FAILED'}: {report.message} ===")
        return report

    def prune_stale_targets(self, config: Optional[SyncConfig] = None) -> Tuple[List[str], List[str]]:
        """
        Remove targets whose taxonomy or content type no longer exists.

        The pruned configuration is saved back to the config store.

        Returns:
            Tuple of (pruned taxonomy slugs, pruned content types)
        """
        config = config or self.load_config()

        stale_taxonomies = [t.slug for t in config.taxonomies if not self.source.taxonomy_exists(t.slug)]
        stale_types = [
            t.content_type for t in config.content_types
            if not self.source.content_type_exists(t.content_type)
        ]

        for slug in stale_taxonomies:
            config.disable_taxonomy(slug)
            logger.warning(f"Taxonomy {slug} no longer exists, removed from sync configuration")

        for content_type in stale_types:
            config.disable_content_type(content_type)
            logger.warning(f"Content type {content_type} no longer exists, removed from sync configuration")

        if stale_taxonomies or stale_types:
            self.config_store.save(config)

        return stale_taxonomies, stale_types

    def _guard(self, name: str, job: Callable[[], SyncResult]) -> SyncResult:
        """Run one target job, turning unexpected collaborator failures into a failed result."""
        try:
            return job()
        except FiresyncError:
            raise
        except Exception as e:
            logger.error(f"Sync of {name} failed: {e}")
            result = SyncResult(target=name, started_at=_now())
            result.add_error(str(e))
            result.completed_at = _now()
            return result

    # Per-target sync

    def sync_taxonomy(self, slug: str) -> SyncResult:
        """Resync one configured taxonomy as its combined document."""
        target = self.load_config().get_taxonomy(slug)
        if target is None:
            return SyncResult.skipped(f"taxonomy:{slug}", f"Taxonomy {slug} is not configured for sync")

        if not self.source.taxonomy_exists(slug):
            result = SyncResult(target=f"taxonomy:{slug}", started_at=_now())
            result.add_error(f"Taxonomy {slug} does not exist")
            result.message = f"Taxonomy {slug} does not exist"
            result.completed_at = _now()
            return result

        return self._sync_taxonomy_target(target)

    def _sync_taxonomy_target(self, target: TaxonomyTarget) -> SyncResult:
        result = SyncResult(target=f"taxonomy:{target.slug}", entity_id=target.slug, started_at=_now())
        path = taxonomy_path(target.slug)

        # Read, map and write under one lock so the last write reflects the latest terms
        with self._path_locks.hold(path):
            terms = self.source.get_terms(target.slug)
            document = self.mapper.map_taxonomy(target, terms)
            self._write(document, result, target.slug)

        result.completed_at = _now()
        result.message = (
            f"Synced taxonomy {target.slug} ({len(terms)} terms)" if result.success
            else f"Failed to sync taxonomy {target.slug}"
        )
        logger.info(result.message)
        return result

    def sync_content_type(self, content_type: str) -> SyncResult:
        """Resync every published item of one configured content type."""
        target = self.load_config().get_content_type(content_type)
        if target is None:
            return SyncResult.skipped(
                f"content_type:{content_type}",
                f"Content type {content_type} is not configured for sync",
            )

        if not self.source.content_type_exists(content_type):
            result = SyncResult(target=f"content_type:{content_type}", started_at=_now())
            result.add_error(f"Content type {content_type} does not exist")
            result.message = f"Content type {content_type} does not exist"
            result.completed_at = _now()
            return result

        return self._sync_content_type_target(target)

    def _sync_content_type_target(self, target: ContentTypeTarget) -> SyncResult:
        name = f"content_type:{target.content_type}"
        if not target.fields:
            logger.info(f"No fields selected for {target.content_type}, skipping")
            return SyncResult.skipped(name, f"No fields selected for {target.content_type}")

        result = SyncResult(target=name, started_at=_now())
        items = self.source.get_items(target.content_type, status=PUBLISHED_STATUS)
        logger.info(f"Syncing {len(items)} {target.content_type} items...")

        for item in items:
            if item.is_revision:
                continue
            self._sync_item_document(item, target, result)

        result.completed_at = _now()
        result.message = (
            f"Synced {result.documents_written}/{result.documents_written + result.documents_failed} "
            f"{target.content_type} items"
        )
        logger.info(result.message)
        return result

    # Single items

    def sync_item(self, item_id: int) -> SyncResult:
        """
        Upsert one item's document.

        Unconfigured content types, revisions and unpublished items are
        skipped without error.
        """
        item = self.source.get_item(item_id)
        if item is None:
            result = SyncResult(target="item", entity_id=str(item_id), started_at=_now())
            result.add_error(f"Item {item_id} does not exist", entity_id=str(item_id))
            result.message = f"Item {item_id} does not exist"
            result.completed_at = _now()
            return result

        target, skipped = self._item_target(item)
        if skipped:
            return skipped

        if not item.is_published:
            return SyncResult.skipped(
                f"content_type:{item.content_type}",
                f"Item {item.id} is not published ({item.status})",
                entity_id=str(item.id),
            )

        if not target.fields:
            return SyncResult.skipped(
                f"content_type:{item.content_type}",
                f"No fields selected for {item.content_type}",
                entity_id=str(item.id),
            )

        result = SyncResult(target=f"content_type:{item.content_type}", entity_id=str(item.id), started_at=_now())
        self._sync_item_document(item, target, result)
        result.completed_at = _now()
        result.message = (
            f"Synced {item.content_type} {item.id}" if result.success
            else f"Failed to sync {item.content_type} {item.id}"
        )
        return result

    def delete_item(self, item_id: int, content_type: str) -> SyncResult:
        """Delete one item's document. A document that is already gone counts as deleted."""
        name = f"content_type:{content_type}"
        if self.load_config().get_content_type(content_type) is None:
            return SyncResult.skipped(name, f"Content type {content_type} is not configured for sync", str(item_id))

        result = SyncResult(target=name, action=SyncAction.DELETE, entity_id=str(item_id), started_at=_now())
        path = item_path(content_type, item_id)

        with self._path_locks.hold(path):
            try:
                self.transport.delete(path)
                result.documents_deleted += 1
                result.message = f"Deleted {path}"
                logger.info(result.message)
            except TransportError as e:
                result.documents_failed += 1
                result.add_error(str(e), entity_id=str(item_id), kind=e.kind.value)
                result.message = f"Failed to delete {path}: {e}"
                logger.error(result.message)

        result.completed_at = _now()
        return result

    def _item_target(self, item: ContentItem) -> Tuple[Optional[ContentTypeTarget], Optional[SyncResult]]:
        """Find the item's target, or the skip result explaining why there is none."""
        if item.is_revision:
            return None, SyncResult.skipped(
                f"content_type:{item.content_type}", f"Item {item.id} is a revision", str(item.id)
            )

        target = self.load_config().get_content_type(item.content_type)
        if target is None:
            return None, SyncResult.skipped(
                f"content_type:{item.content_type}",
                f"Content type {item.content_type} is not configured for sync",
                str(item.id),
            )
        return target, None

    def _sync_item_document(self, item: ContentItem, target: ContentTypeTarget, result: SyncResult) -> None:
        path = item_path(item.content_type, item.id)
        with self._path_locks.hold(path):
            document = self.mapper.map_item(item, target)
            self._write(document, result, str(item.id))

    def _write(self, document: SyncDocument, result: SyncResult, entity_id: str) -> None:
        """Upsert a document, recording the outcome on the result."""
        if document.degraded:
            result.degraded.append(document.degraded.to_dict())

        try:
            self.transport.upsert(document.path, document.fields, merge=self.merge)
            result.documents_written += 1
            logger.debug(f"Wrote {document.path}")
        except TransportError as e:
            result.documents_failed += 1
            result.add_error(str(e), entity_id=entity_id, path=document.path, kind=e.kind.value)
            logger.error(f"Failed to write {document.path}: {e}")

    # Content events

    def on_item_saved(self, item_id: int) -> SyncResult:
        """An item was created or updated."""
        return self.sync_item(item_id)

    def on_item_deleted(self, item_id: int, content_type: str) -> SyncResult:
        """An item was deleted from the content system."""
        return self.delete_item(item_id, content_type)

    def on_item_status_changed(
        self,
        item_id: int,
        content_type: str,
        old_status: Optional[str] = None
    ) -> SyncResult:
        """
        An item's status changed.

        The item's current status decides: published items are upserted,
        items that left the published status are deleted remotely.

        Args:
            item_id: Item ID
            content_type: Item content type, used when the item is gone
            old_status: Previous status if known; None deletes whenever the
                item is not published now
        """
        if self.load_config().get_content_type(content_type) is None:
            return SyncResult.skipped(
                f"content_type:{content_type}",
                f"Content type {content_type} is not configured for sync",
                str(item_id),
            )

        item = self.source.get_item(item_id)
        if item is not None and item.is_revision:
            return SyncResult.skipped(f"content_type:{content_type}", f"Item {item_id} is a revision", str(item_id))

        if item is not None and item.is_published:
            return self.sync_item(item_id)

        if old_status is None or old_status == PUBLISHED_STATUS:
            logger.info(f"{content_type} {item_id} left published status, deleting")
            return self.delete_item(item_id, content_type)

        return SyncResult.skipped(
            f"content_type:{content_type}",
            f"Item {item_id} was not published before",
            str(item_id),
        )

    def on_item_meta_changed(self, item_id: int, meta_key: str) -> SyncResult:
        """A metadata value changed; resync if the key is a selected field."""
        return self._resync_if_selected(
            item_id,
            lambda target: target.selects(FieldKind.METADATA, meta_key)
            or target.selects(FieldKind.CUSTOM_FIELD, meta_key),
            f"meta {meta_key}",
        )

    def on_item_terms_changed(self, item_id: int, taxonomy: str) -> SyncResult:
        """An item's terms changed; resync if the taxonomy is a selected field."""
        return self._resync_if_selected(
            item_id,
            lambda target: target.selects(FieldKind.TAXONOMY, taxonomy),
            f"taxonomy {taxonomy}",
        )

    def on_primary_image_changed(self, item_id: int) -> SyncResult:
        """An item's primary image was set or removed."""
        return self._resync_if_selected(
            item_id,
            lambda target: target.selects(FieldKind.PRIMARY_IMAGE),
            "primary image",
        )

    def _resync_if_selected(
        self,
        item_id: int,
        is_selected: Callable[[ContentTypeTarget], bool],
        change: str
    ) -> SyncResult:
        item = self.source.get_item(item_id)
        if item is None:
            return SyncResult.skipped("item", f"Item {item_id} does not exist", str(item_id))

        target, skipped = self._item_target(item)
        if skipped:
            return skipped

        if not item.is_published:
            return SyncResult.skipped(
                f"content_type:{item.content_type}",
                f"Item {item_id} is not published",
                str(item_id),
            )

        if not is_selected(target):
            return SyncResult.skipped(
                f"content_type:{item.content_type}",
                f"Change to {change} does not affect synced fields",
                str(item_id),
            )

        return self.sync_item(item_id)

    def on_term_saved(self, term_id: int, taxonomy: str) -> SyncResult:
        """A term was created or updated; the whole taxonomy document is rewritten."""
        return self.sync_taxonomy(taxonomy)

    def on_term_deleted(self, term_id: int, taxonomy: str) -> SyncResult:
        """A term was deleted; the taxonomy document is rewritten without it."""
        return self.sync_taxonomy(taxonomy)

    def on_taxonomy_registered(self, slug: str) -> SyncResult:
        """A taxonomy became available; sync it if it is configured."""
        return self.sync_taxonomy(slug)

    def collect_stats(self) -> Dict[str, Any]:
        return collect_stats(self.load_config(), self.source)


def collect_stats(config: SyncConfig, source: ContentSource) -> Dict[str, Any]:
    """Term and item counts for every configured target."""
    taxonomies = {}
    for target in config.taxonomies:
        exists = source.taxonomy_exists(target.slug)
        taxonomies[target.slug] = {
            "exists": exists,
            "terms": len(source.get_terms(target.slug)) if exists else 0,
        }

    content_types = {}
    for target in config.content_types:
        exists = source.content_type_exists(target.content_type)
        items = source.get_items(target.content_type, status=None) if exists else []
        content_types[target.content_type] = {
            "exists": exists,
            "items": len(items),
            "published": sum(1 for i in items if i.is_published),
            "fields": [f.name for f in target.fields],
        }

    return {
        "taxonomies": taxonomies,
        "content_types": content_types,
        "connection": {
            "project_id": config.connection.project_id,
            "database_id": config.connection.database_id,
            "emulator": config.connection.emulator.enabled,
        },
    }
