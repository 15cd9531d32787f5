"""
Store module for the CMS replica - entity indexing and queries.

This module handles:
- Sync item shapes and kind detection
- Locale projection of all-locales items
- Query parsing into filter predicates
- The in-memory entity store

Invariants:
    - Indexing is idempotent and tolerant of out-of-order delivery
    - Queries and lookups never expose tombstones
    - Returned entities never alias stored state
"""

from .base import ContentStore, Exportable, Syncable
from .entity_store import InMemoryEntityStore
from .locale import ALL_LOCALES, denormalize_for_locale
from .query import RESERVED_KEYS, parse_query
from .types import Collection, ItemKind, item_kind

__all__ = [
    # Protocols
    "ContentStore",
    "Syncable",
    "Exportable",
    # Implementation
    "InMemoryEntityStore",
    # Helpers
    "ALL_LOCALES",
    "denormalize_for_locale",
    "parse_query",
    "RESERVED_KEYS",
    "Collection",
    "ItemKind",
    "item_kind",
]
