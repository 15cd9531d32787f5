"""
In-memory delta-sync remote for testing.

This module provides a simple in-memory content space that speaks the sync
protocol, for:
- Unit tests
- Integration tests of the sync engine
- Local development without API credentials

Tokens encode a generation and a position in the change log. Expiring
tokens bumps the generation, so every token handed out before is rejected
with the same 400 error the real API returns.

Invariants:
    - All data is lost on process exit
    - Initial syncs list current content only, never deletions
    - Incremental syncs report the latest change per id since the token

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with SyncClient protocol
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, cast

from ..store.types import ItemKind, SyncItem, item_id, item_kind
from .base import (
    SyncCollection,
    SyncConnectionError,
    SyncQuery,
    SyncRequestError,
)

logger = logging.getLogger(__name__)

_Key = Tuple[bool, str]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InMemorySyncClient:
    """In-memory implementation of SyncClient.

    Example:
        >>> remote = InMemorySyncClient()
        >>> await remote.connect()
        >>> remote.publish(entry)
        >>> collection = await remote.sync(SyncQuery.initial_sync())
        >>> remote.unpublish("Entry", entry["sys"]["id"])
        >>> delta = await remote.sync(SyncQuery.from_token(collection.next_sync_token))
    """

    def __init__(self) -> None:
        self._live: Dict[_Key, SyncItem] = {}
        self._log: List[SyncItem] = []
        self._generation = 0
        self._failures: List[BaseException] = []
        self._connected = False
        self.calls: List[SyncQuery] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemorySyncClient connected")

    async def close(self) -> None:
        """Close; published content is kept."""
        self._connected = False
        logger.debug("InMemorySyncClient closed")

    def publish(self, item: SyncItem) -> None:
        """Create or update an entry or asset.

        Raises:
            ValueError: If item is not an Entry or Asset
        """
        kind = item_kind(item)
        if kind not in (ItemKind.ENTRY, ItemKind.ASSET):
            raise ValueError(f"Can only publish entries and assets, got {kind}")
        self._live[(kind.is_entry_kind, item_id(item))] = item
        self._log.append(item)

    def unpublish(self, link_type: str, target_id: str, deleted_at: Optional[str] = None) -> None:
        """Delete an entry ("Entry") or asset ("Asset") and log a tombstone."""
        is_entry = link_type == "Entry"
        self._live.pop((is_entry, target_id), None)
        ts = deleted_at or _now()
        self._log.append(
            {
                "sys": {
                    "id": target_id,
                    "type": "DeletedEntry" if is_entry else "DeletedAsset",
                    "updatedAt": ts,
                    "deletedAt": ts,
                }
            }
        )

    def expire_tokens(self) -> None:
        """Invalidate every token issued so far."""
        self._generation += 1

    def fail_next(self, error: BaseException) -> None:
        """Make the next sync() call raise error."""
        self._failures.append(error)

    async def sync(self, query: SyncQuery) -> SyncCollection:
        """Answer a sync query from the in-memory space.

        Raises:
            SyncConnectionError: If not connected
            SyncRequestError: 400 for an unknown or expired token
        """
        if not self._connected:
            raise SyncConnectionError("Not connected")

        self.calls.append(query)
        if self._failures:
            raise self._failures.pop(0)

        # Behave like a network call: let other tasks run
        await asyncio.sleep(0)

        if query.initial:
            changes = list(self._live.values())
        else:
            start = self._parse_token(query.next_sync_token or "")
            latest: Dict[_Key, SyncItem] = {}
            for change in self._log[start:]:
                kind = cast(ItemKind, item_kind(change))
                latest.pop((kind.is_entry_kind, item_id(change)), None)
                latest[(kind.is_entry_kind, item_id(change))] = change
            changes = list(latest.values())

        collection = SyncCollection(next_sync_token=f"{self._generation}:{len(self._log)}")
        groups = {
            ItemKind.ENTRY: collection.entries,
            ItemKind.ASSET: collection.assets,
            ItemKind.DELETED_ENTRY: collection.deleted_entries,
            ItemKind.DELETED_ASSET: collection.deleted_assets,
        }
        for change in changes:
            groups[cast(ItemKind, item_kind(change))].append(change)

        return collection

    def _parse_token(self, token: str) -> int:
        generation, _, position = token.partition(":")
        if (
            not generation.isdigit()
            or not position.isdigit()
            or int(generation) != self._generation
            or int(position) > len(self._log)
        ):
            raise SyncRequestError(400)
        return int(position)

    # Testing helpers

    def get_published(self) -> List[SyncItem]:
        """Current live content, entries and assets."""
        return list(self._live.values())

    def get_change_count(self) -> int:
        return len(self._log)
