"""
In-memory entity store for the CMS replica.

This module holds the replica's content:
- Entries by id (live items and DeletedEntry tombstones)
- Assets by id (live items and DeletedAsset tombstones)
- The continuation token of the last applied sync

The store is a materialized view of the sync stream. It can be rebuilt at
any time by a full sync or by restoring a backup.

Invariants:
    - An item only replaces a stored item with an older or equal updatedAt
    - Tombstones are kept so that late, stale upserts are rejected
    - Reads never return tombstones
    - import_items() installs entries, assets and token in one step
    - Items are deep-copied on the way in and on the way out

How to change safely:
    - Never add an await between building and installing imported state
    - Test last-writer-wins with out-of-order deliveries
    - Keep export() order (entries, then assets) stable for backups
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterator, Optional

from ..errors import UnrecognizedItemKind
from .base import SyncItems
from .locale import denormalize_for_locale
from .query import matches, parse_query
from .types import (
    Collection,
    Entity,
    ItemKind,
    SyncItem,
    item_id,
    item_kind,
    sys_of,
    updated_at,
)

logger = logging.getLogger(__name__)


class InMemoryEntityStore:
    """Dict-backed replica of a content space.

    Implements the ContentStore, Syncable and Exportable protocols.

    Thread safety:
        Designed for a single asyncio event loop. No method awaits while
        mutating state, so every call is atomic with respect to other
        coroutines.

    Example:
        >>> store = InMemoryEntityStore(default_locale="en-US")
        >>> await store.index(sync_entry)
        >>> entry = await store.get_entry("6RPLNBrHzAwg4X58WFkCBc", locale="de")
        >>> page = await store.get_entries({"content_type": "post", "limit": 10})
    """

    def __init__(self, default_locale: str = "en-US") -> None:
        """Initialize an empty store.

        Args:
            default_locale: Locale for projection when none is requested,
                and the fallback for untranslated fields
        """
        self.default_locale = default_locale
        self._entries: Dict[str, SyncItem] = {}
        self._assets: Dict[str, SyncItem] = {}
        self._token: Optional[str] = None

    async def index(self, item: SyncItem) -> None:
        """Apply one sync item.

        Stale items (strictly older than what is stored for the id) are
        dropped silently; an item with the same updatedAt wins.

        Args:
            item: Entry, Asset, DeletedEntry or DeletedAsset sync item

        Raises:
            UnrecognizedItemKind: If sys.type is not one of the four kinds
        """
        kind = item_kind(item)
        key = item_id(item)
        if kind is None or not key:
            raise UnrecognizedItemKind(sys_of(item).get("type"), key)

        mapping = self._entries if kind.is_entry_kind else self._assets
        stored = mapping.get(key)
        if stored is not None and updated_at(stored) > updated_at(item):
            logger.debug(
                "Dropped stale sync item",
                extra={"id": key, "kind": kind.value},
            )
            return

        mapping[key] = copy.deepcopy(item)

    async def get_entry(self, entry_id: str, locale: Optional[str] = None) -> Optional[Entity]:
        """Get a live entry.

        Args:
            entry_id: Entry id
            locale: Locale to project to; None for the default, "*" for the
                raw all-locales item

        Returns:
            Projected entry, or None if absent or deleted
        """
        return self._read(self._entries, entry_id, ItemKind.ENTRY, locale)

    async def get_asset(self, asset_id: str, locale: Optional[str] = None) -> Optional[Entity]:
        """Get a live asset. See get_entry()."""
        return self._read(self._assets, asset_id, ItemKind.ASSET, locale)

    async def get_entries(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        """Query live entries.

        Args:
            query: Filters plus optional skip, limit and locale

        Returns:
            Collection with the total match count and one page of items

        Raises:
            UnsupportedOperator: If a filter uses an unknown operator
        """
        return self._query(self._entries, ItemKind.ENTRY, query)

    async def get_assets(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        """Query live assets. See get_entries()."""
        return self._query(self._assets, ItemKind.ASSET, query)

    async def get_token(self) -> Optional[str]:
        return self._token

    async def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def import_items(self, items: SyncItems, token: Optional[str]) -> None:
        """Replace all content and the token with a full snapshot.

        The input is drained first (this may suspend if items is async).
        The new mappings are then installed together with the token in one
        step. Within the batch the last item per id wins; no timestamp check
        is made since the snapshot is authoritative.

        Args:
            items: Sync items, sync or async iterable
            token: Continuation token matching the snapshot

        Raises:
            UnrecognizedItemKind: If an item has an unknown kind; the store
                is left unchanged
        """
        entries: Dict[str, SyncItem] = {}
        assets: Dict[str, SyncItem] = {}

        if hasattr(items, "__aiter__"):
            async for item in items:  # type: ignore[union-attr]
                self._stage(entries, assets, item)
        else:
            for item in items:  # type: ignore[union-attr]
                self._stage(entries, assets, item)

        # Commit: no await below this line
        self._entries, self._assets, self._token = entries, assets, token

        logger.info(
            "Imported snapshot",
            extra={"entries": len(entries), "assets": len(assets), "has_token": token is not None},
        )

    def export(self) -> Iterator[SyncItem]:
        """Yield every stored item, tombstones included.

        Entries come first, then assets. The sequence reflects the state
        when iteration starts; each call starts a fresh sequence.
        """
        entries = list(self._entries.values())
        assets = list(self._assets.values())
        for item in entries:
            yield copy.deepcopy(item)
        for item in assets:
            yield copy.deepcopy(item)

    def count(self) -> Dict[str, int]:
        """Live and tombstoned item counts, for logs and stats."""
        live_entries = sum(1 for i in self._entries.values() if item_kind(i) == ItemKind.ENTRY)
        live_assets = sum(1 for i in self._assets.values() if item_kind(i) == ItemKind.ASSET)
        return {
            "entries": live_entries,
            "assets": live_assets,
            "tombstones": len(self._entries) - live_entries + len(self._assets) - live_assets,
        }

    def _stage(
        self,
        entries: Dict[str, SyncItem],
        assets: Dict[str, SyncItem],
        item: SyncItem,
    ) -> None:
        kind = item_kind(item)
        key = item_id(item)
        if kind is None or not key:
            raise UnrecognizedItemKind(sys_of(item).get("type"), key)
        target = entries if kind.is_entry_kind else assets
        target[key] = copy.deepcopy(item)

    def _read(
        self,
        mapping: Dict[str, SyncItem],
        key: str,
        live_kind: ItemKind,
        locale: Optional[str],
    ) -> Optional[Entity]:
        stored = mapping.get(key)
        if stored is None or item_kind(stored) != live_kind:
            return None
        return denormalize_for_locale(stored, locale, self.default_locale)

    def _query(
        self,
        mapping: Dict[str, SyncItem],
        live_kind: ItemKind,
        query: Optional[Dict[str, Any]],
    ) -> Collection:
        query = query or {}
        filters = parse_query(query, self.default_locale)
        skip = max(int(query.get("skip") or 0), 0)
        limit = max(int(query.get("limit") or 0), 0)
        locale = query.get("locale")

        total = 0
        items = []
        for stored in mapping.values():
            if item_kind(stored) != live_kind or not matches(stored, filters):
                continue
            total += 1
            if total <= skip:
                continue
            if limit and len(items) >= limit:
                continue
            items.append(denormalize_for_locale(stored, locale, self.default_locale))

        return Collection(total=total, skip=skip, limit=limit, items=items)
