"""
Firestore Content Sync

Mirrors CMS content (taxonomies and typed content records) into a
Firestore document store and keeps the two in sync as content changes.

Supports:
- Field selection and renaming per content type
- Metadata, taxonomy, custom-field and primary-image fields
- Full resync, single-entity upsert and delete on content events
- Native client or REST transport, emulator or production
- Service-account token exchange with shared caching
"""

__version__ = "0.1.0"
