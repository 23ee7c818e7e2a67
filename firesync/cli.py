"""Command line interface for configuring and running the sync."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import ConfigurationError, FiresyncError
from .models.config import JsonConfigStore, SyncConfig
from .models.result import SyncResult
from .models.target import (
    CUSTOM_FIELD_PREFIX,
    META_PREFIX,
    PRIMARY_IMAGE_FIELD,
    TAXONOMY_PREFIXES,
    OrderDirection,
)
from .orchestrator import SyncOrchestrator, collect_stats
from .services.probe import ConnectivityProbe, TEST_COLLECTION
from .services.token_provider import ServiceAccountCredential
from .sources.memory import InMemoryContentSource, InMemoryCustomFields, load_snapshot
from .transports import create_transport

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "firesync.json"


def load_content(path: Optional[str]) -> Tuple[InMemoryContentSource, InMemoryCustomFields, bool]:
    """
    Load the content snapshot.

    Returns:
        Tuple of (content source, custom-fields plugin, whether a snapshot was given)
    """
    if not path:
        source = InMemoryContentSource()
        return source, InMemoryCustomFields(source, active=False), False

    source, custom_fields = load_snapshot(path)
    return source, custom_fields, True


def build_orchestrator(args, store: JsonConfigStore) -> SyncOrchestrator:
    """
    Build the orchestrator for commands that talk to the store.

    Raises:
        ConfigurationError: if no content snapshot was given
    """
    if not args.content:
        raise ConfigurationError("Syncing needs a content snapshot (--content)")

    config = store.load()
    source, custom_fields, _ = load_content(args.content)
    transport = create_transport(config.connection)
    return SyncOrchestrator(store, source, transport, custom_fields=custom_fields, merge=args.merge)


def print_result(result: SyncResult) -> None:
    status = "OK" if result.success else "FAILED"
    print(f"[{status}] {result.target}: {result.message}")
    for error in result.errors:
        entity = f" ({error['entity_id']})" if error.get("entity_id") else ""
        print(f"    - {error['error']}{entity}")
    for degraded in result.degraded:
        print(f"    ~ {degraded['entity']}: unresolved {', '.join(degraded['fields'])}")


def print_table(rows: List[Tuple[str, Any]], headers: Tuple[str, str] = ("Setting", "Value")) -> None:
    width = max([len(headers[0])] + [len(str(key)) for key, _ in rows])
    print(f"{headers[0]:<{width}}  {headers[1]}")
    print(f"{'-' * width}  {'-' * len(headers[1])}")
    for key, value in rows:
        print(f"{key:<{width}}  {value}")


def cmd_config(args, store: JsonConfigStore) -> int:
    """Update connection and execution settings."""
    config = store.load()
    connection = config.connection
    updated = []

    if args.project_id is not None:
        connection.project_id = args.project_id
        updated.append("Project ID")

    if args.database_id is not None:
        connection.database_id = args.database_id
        updated.append("Database ID")

    if args.service_account is not None:
        path = Path(args.service_account)
        if not path.exists():
            print(f"Error: Service account file not found: {path}")
            return 1
        text = path.read_text(encoding="utf-8")
        ServiceAccountCredential.from_json(text)
        connection.service_account = text
        updated.append("Service Account")

    if args.emulator is not None:
        connection.persisted_emulator.enabled = args.emulator
        updated.append("Emulator " + ("Enabled" if args.emulator else "Disabled"))

    if args.emulator_host is not None:
        connection.persisted_emulator.host = args.emulator_host
        updated.append("Emulator Host")

    if args.emulator_port is not None:
        connection.persisted_emulator.port = args.emulator_port
        updated.append("Emulator Port")

    if args.transport is not None:
        connection.transport = args.transport
        updated.append("Transport")

    if args.timeout is not None:
        connection.timeout = args.timeout
        updated.append("Timeout")

    if args.workers is not None:
        config.parallel_workers = max(1, args.workers)
        updated.append("Parallel Workers")

    if args.order_field is not None:
        config.default_order_field = args.order_field
        updated.append("Default Order Field")

    if args.order_direction is not None:
        config.default_order_direction = OrderDirection.parse(args.order_direction)
        updated.append("Default Order Direction")

    if args.preflight is not None:
        config.preflight_check = args.preflight
        updated.append("Pre-flight Check")

    if not updated:
        print("Warning: No configuration options provided")
        return 0

    store.save(config)
    print(f"Success: Updated: {', '.join(updated)}")
    return 0


def status_rows(config: SyncConfig) -> List[Tuple[str, Any]]:
    connection = config.connection
    return [
        ("Firebase Project ID", connection.project_id or "Not configured"),
        ("Database ID", connection.database_id),
        ("Service Account", "Configured" if connection.service_account else "Not configured"),
        ("Emulator Mode", "Enabled" if connection.emulator.enabled else "Disabled"),
        ("Emulator Host", connection.emulator.host),
        ("Emulator Port", connection.emulator.port),
        ("Transport", connection.transport),
        ("Synced Taxonomies", ", ".join(t.slug for t in config.taxonomies) or "None"),
        ("Synced Content Types", ", ".join(t.content_type for t in config.content_types) or "None"),
    ]


def cmd_status(args, store: JsonConfigStore) -> int:
    """Show the current configuration."""
    rows = status_rows(store.load())
    if args.format == "json":
        print(json.dumps(dict(rows), indent=2))
    else:
        print_table(rows)
    return 0


def cmd_taxonomy(args, store: JsonConfigStore) -> int:
    """Enable, disable, list or sync taxonomies."""
    config = store.load()

    if args.action == "list":
        if not config.taxonomies:
            print("No taxonomies configured for sync")
            return 0
        print_table(
            [(t.slug, f"order by {t.order_field} {t.order_direction.value}") for t in config.taxonomies],
            headers=("Taxonomy", "Ordering"),
        )
        return 0

    if args.action == "sync":
        orchestrator = build_orchestrator(args, store)
        slugs = args.slugs or [t.slug for t in config.taxonomies]
        if not slugs:
            print("Warning: No taxonomies configured for sync")
            return 0
        results = [orchestrator.sync_taxonomy(slug) for slug in slugs]
        return finish(results)

    source, _, has_content = load_content(args.content)
    slugs = list(args.slugs)
    if args.action == "enable" and args.all:
        if not has_content:
            print("Error: --all needs a content snapshot (--content)")
            return 1
        slugs = source.list_taxonomies()

    if not slugs:
        print("Error: No taxonomies given")
        return 1

    for slug in slugs:
        if args.action == "enable":
            if has_content and not source.taxonomy_exists(slug):
                print(f"Warning: Taxonomy does not exist: {slug}")
                continue
            if config.enable_taxonomy(slug):
                print(f"Success: Enabled sync for taxonomy: {slug}")
            else:
                print(f"Taxonomy already enabled: {slug}")
        else:
            if config.disable_taxonomy(slug):
                print(f"Success: Disabled sync for taxonomy: {slug}")
            else:
                print(f"Taxonomy was not enabled: {slug}")

    store.save(config)
    return 0


def parse_mapping(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse "source=destination" pairs."""
    mapping = {}
    for pair in pairs or []:
        source, sep, destination = pair.partition("=")
        if not sep or not source.strip() or not destination.strip():
            raise ValueError(f"Invalid field mapping {pair!r}, expected source=destination")
        mapping[source.strip()] = destination.strip()
    return mapping


def available_fields(
    source: InMemoryContentSource,
    custom_fields: InMemoryCustomFields,
    content_type: str
) -> List[Tuple[str, str]]:
    """Field identifiers that can be selected for a content type."""
    fields = [(name, "property") for name in source.list_item_properties(content_type)]
    fields += [(f"{META_PREFIX}{key}", "metadata") for key in source.list_meta_keys(content_type)]
    fields += [(f"{TAXONOMY_PREFIXES[0]}{slug}", "taxonomy") for slug in source.list_taxonomies()]
    if custom_fields.is_active():
        fields += [
            (f"{CUSTOM_FIELD_PREFIX}{f.key}", f"custom field ({f.type})")
            for f in custom_fields.list_fields_for_type(content_type)
        ]
    fields.append((PRIMARY_IMAGE_FIELD, "primary image"))
    return fields


def cmd_content_type(args, store: JsonConfigStore) -> int:
    """Enable, disable, list, sync or inspect content types."""
    config = store.load()

    if args.action == "list":
        if not config.content_types:
            print("No content types configured for sync")
            return 0
        print_table(
            [(t.content_type, ", ".join(f.name for f in t.fields) or "(no fields)") for t in config.content_types],
            headers=("Content Type", "Fields"),
        )
        return 0

    if args.action == "sync":
        orchestrator = build_orchestrator(args, store)
        types = args.types or [t.content_type for t in config.content_types]
        if not types:
            print("Warning: No content types configured for sync")
            return 0
        return finish([orchestrator.sync_content_type(t) for t in types])

    source, custom_fields, has_content = load_content(args.content)

    if args.action == "fields":
        if not has_content:
            print("Error: Listing fields needs a content snapshot (--content)")
            return 1
        for content_type in args.types:
            print(f"{content_type}:")
            target = config.get_content_type(content_type)
            selected = {f.name for f in target.fields} if target else set()
            for name, kind in available_fields(source, custom_fields, content_type):
                marker = "*" if name in selected else " "
                print(f"  {marker} {name:<32} {kind}")
        return 0

    if not args.types:
        print("Error: No content types given")
        return 1

    fields = [f.strip() for f in args.fields.split(",") if f.strip()] if getattr(args, "fields", None) else None
    mapping = parse_mapping(getattr(args, "map", None))

    for content_type in args.types:
        if args.action == "enable":
            if has_content and not source.content_type_exists(content_type):
                print(f"Warning: Content type does not exist: {content_type}")
                continue
            if config.enable_content_type(content_type, fields):
                print(f"Success: Enabled sync for content type: {content_type}")
            else:
                print(f"Content type already enabled: {content_type}")
            if mapping:
                config.get_content_type(content_type).field_mapping.update(mapping)
        else:
            if config.disable_content_type(content_type):
                print(f"Success: Disabled sync for content type: {content_type}")
            else:
                print(f"Content type was not enabled: {content_type}")

    store.save(config)
    return 0


def cmd_sync(args, store: JsonConfigStore) -> int:
    """Run a full resync, or sync/delete single items."""
    orchestrator = build_orchestrator(args, store)

    if args.item:
        return finish([orchestrator.sync_item(item_id) for item_id in args.item])

    if args.delete:
        content_type, _, item_id = args.delete.partition(":")
        if not item_id.isdigit():
            print("Error: --delete expects CONTENT_TYPE:ID")
            return 1
        return finish([orchestrator.delete_item(int(item_id), content_type)])

    report = orchestrator.sync_all()

    print("\n" + "=" * 60)
    print("SYNC COMPLETE" if report.success else "SYNC FAILED")
    print("=" * 60)
    for result in report.results:
        print_result(result)
    if report.pruned_targets:
        print(f"Pruned stale targets: {', '.join(report.pruned_targets)}")
    print(f"Documents written: {report.documents_written}")
    print(f"Documents failed: {report.documents_failed}")
    if report.duration_seconds is not None:
        print(f"Duration: {report.duration_seconds:.2f} seconds")

    if not report.success:
        print(f"Error: {report.message}")
        return 1
    print("Success: All targets synced")
    return 0


def cmd_test(args, store: JsonConfigStore) -> int:
    """Check the connection to the document store."""
    config = store.load()
    print("Testing Firestore connection...")

    if args.verbose:
        print(f"Project ID: {config.connection.project_id}")
        print(f"Database ID: {config.connection.database_id}")
        print(f"Emulator Mode: {'Enabled' if config.connection.emulator.enabled else 'Disabled'}")

    transport = create_transport(config.connection)
    probe = ConnectivityProbe(transport)

    if args.verbose:
        print(f"Transport: {transport.name}")

    if not probe.check(write_test=args.write):
        print(f"Error: Connection failed: {probe.last_error}")
        return 1

    print("Success: Connection successful!")
    if args.verbose and args.write:
        print(f"Successfully wrote and removed a test document in collection: {TEST_COLLECTION}")
    return 0


def cmd_stats(args, store: JsonConfigStore) -> int:
    """Show term and item counts for configured targets."""
    config = store.load()
    source, _, _ = load_content(args.content)
    stats = collect_stats(config, source)

    print("Synchronization Statistics")
    print("==========================")
    print("")
    print(f"Synced Taxonomies: {len(stats['taxonomies'])}")
    for slug, info in stats["taxonomies"].items():
        missing = "" if info["exists"] else " (missing)"
        print(f"  - {slug}: {info['terms']} terms{missing}")
    print("")
    print(f"Synced Content Types: {len(stats['content_types'])}")
    for content_type, info in stats["content_types"].items():
        missing = "" if info["exists"] else " (missing)"
        print(f"  - {content_type}: {info['items']} items, {info['published']} published{missing}")
    print("")
    print("Configuration:")
    print(f"  Project ID: {stats['connection']['project_id'] or 'Not configured'}")
    print(f"  Database ID: {stats['connection']['database_id']}")
    print(f"  Emulator Mode: {'Yes' if stats['connection']['emulator'] else 'No'}")
    return 0


def finish(results: List[SyncResult]) -> int:
    for result in results:
        print_result(result)
    if all(r.success for r in results):
        print("Success: Sync complete")
        return 0
    print("Error: Sync failed")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="firesync",
        description="Firestore Content Sync - Mirror CMS content into Firestore"
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to the sync config file")
    parser.add_argument("--content", help="Path to a JSON content snapshot")
    parser.add_argument("--merge", action="store_true", help="Merge into existing documents instead of replacing")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Connection configuration
    config_parser = subparsers.add_parser("config", help="Configure connection settings")
    config_parser.add_argument("--project-id", help="Firebase project ID")
    config_parser.add_argument("--database-id", help="Firestore database ID")
    config_parser.add_argument("--service-account", help="Path to a service account JSON key")
    config_parser.add_argument("--emulator", dest="emulator", action="store_true", default=None,
                               help="Use the local emulator")
    config_parser.add_argument("--no-emulator", dest="emulator", action="store_false",
                               help="Use production Firestore")
    config_parser.add_argument("--emulator-host", help="Emulator host")
    config_parser.add_argument("--emulator-port", type=int, help="Emulator port")
    config_parser.add_argument("--transport", choices=["auto", "rest", "native"], help="Transport to use")
    config_parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    config_parser.add_argument("--workers", type=int, help="Parallel workers for full resync")
    config_parser.add_argument("--order-field", help="Default taxonomy term order field")
    config_parser.add_argument("--order-direction", choices=["asc", "desc"], help="Default term order direction")
    config_parser.add_argument("--preflight", dest="preflight", action="store_true", default=None,
                               help="Check the connection before a full resync")
    config_parser.add_argument("--no-preflight", dest="preflight", action="store_false",
                               help="Skip the connection check before a full resync")

    # Status
    status_parser = subparsers.add_parser("status", help="Show current configuration")
    status_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    # Taxonomies
    taxonomy_parser = subparsers.add_parser("taxonomy", help="Manage taxonomy sync")
    taxonomy_parser.add_argument("action", choices=["enable", "disable", "list", "sync"])
    taxonomy_parser.add_argument("slugs", nargs="*", help="Taxonomy slugs")
    taxonomy_parser.add_argument("--all", action="store_true", help="Enable all registered taxonomies")

    # Content types
    type_parser = subparsers.add_parser("content-type", help="Manage content type sync")
    type_parser.add_argument("action", choices=["enable", "disable", "list", "sync", "fields"])
    type_parser.add_argument("types", nargs="*", help="Content type slugs")
    type_parser.add_argument("--fields", help="Comma-separated field identifiers to sync")
    type_parser.add_argument("--map", action="append", help="Rename a field: source=destination")

    # Sync
    sync_parser = subparsers.add_parser("sync", help="Run a full resync")
    sync_parser.add_argument("--item", type=int, action="append", help="Sync a single item by ID")
    sync_parser.add_argument("--delete", help="Delete a single item document: CONTENT_TYPE:ID")

    # Connection test
    test_parser = subparsers.add_parser("test", help="Test the Firestore connection")
    test_parser.add_argument("--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
                             help="Show detailed connection information")
    test_parser.add_argument("--write", action="store_true", help="Also write and delete a test document")

    # Statistics
    subparsers.add_parser("stats", help="Show sync statistics")

    return parser


COMMANDS = {
    "config": cmd_config,
    "status": cmd_status,
    "taxonomy": cmd_taxonomy,
    "content-type": cmd_content_type,
    "sync": cmd_sync,
    "test": cmd_test,
    "stats": cmd_stats,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    store = JsonConfigStore(args.config)
    try:
        return command(args, store)
    except (FiresyncError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
