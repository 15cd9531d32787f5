"""
Sync engine for the CMS replica.

The SyncEngine pulls deltas from a SyncClient and applies them to a store:
- Incremental sync from the stored continuation token
- Initial sync when no token is stored
- Full resync with atomic import when the remote rejects the token

Invariants:
    - Deltas are applied in group order: entries, assets, deleted entries,
      deleted assets
    - The token is written only after every delta of the response is indexed
    - A full resync replaces content and token together
    - Errors other than a rejected token propagate unchanged

How to change safely:
    - Only one sync() should be in flight per store; callers serialize
    - The store's last-writer-wins rule, not call order, decides the final
      state, so do not rely on ordering within a group
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from ..store.base import Exportable, Syncable
from .base import SyncClient, SyncCollection, SyncQuery, is_token_invalid

logger = logging.getLogger(__name__)


class SyncTarget(Syncable, Exportable, Protocol):
    """A store the engine can both index into and import into."""


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class SyncEngine:
    """Applies remote deltas to a store.

    Thread safety:
        Designed to be driven by a single task. Concurrent sync() calls on
        the same store are not serialized and may interleave token reads
        and writes.

    Example:
        >>> engine = SyncEngine(store, client)
        >>> await engine.sync()
        >>> engine.stats["last_token"]
    """

    def __init__(self, store: SyncTarget, client: SyncClient) -> None:
        """Initialize the engine.

        Args:
            store: Store implementing Syncable and Exportable
            client: Remote delta-sync client
        """
        self.store = store
        self.client = client

        self._state = SyncState.IDLE
        self._in_flight = 0
        self._sync_count = 0
        self._full_resync_count = 0
        self._items_applied = 0
        self._last_sync_ms: Optional[int] = None
        self._last_error: Optional[str] = None
        self._last_token: Optional[str] = None

    @property
    def state(self) -> SyncState:
        return self._state

    async def sync(self) -> None:
        """Bring the store up to date with the remote.

        Raises:
            Exception: Any client or store error other than a rejected token,
                unchanged
        """
        if self._in_flight:
            logger.warning("sync() called while another sync is in flight")

        self._in_flight += 1
        self._state = SyncState.SYNCING
        started = time.monotonic()
        try:
            token = await self.store.get_token()
            query = SyncQuery.from_token(token) if token else SyncQuery.initial_sync()

            try:
                collection = await self.client.sync(query)
            except Exception as e:
                if not token or not is_token_invalid(e):
                    raise
                logger.warning(
                    "Sync token rejected, falling back to full resync",
                    extra={"error": str(e)},
                )
                await self._full_resync()
            else:
                await self._apply(collection)

            self._sync_count += 1
            self._last_sync_ms = int(time.time() * 1000)
            self._last_error = None
            logger.info(
                "Sync complete",
                extra={
                    "initial": query.initial,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )

        except Exception as e:
            self._last_error = str(e)
            logger.error(f"Sync failed: {e}", exc_info=True)
            raise

        finally:
            self._in_flight -= 1
            if not self._in_flight:
                self._state = SyncState.IDLE

    async def _apply(self, collection: SyncCollection) -> None:
        """Index every delta in group order, then store the new token."""
        for item in collection.items():
            await self.store.index(item)
            self._items_applied += 1

        await self.store.set_token(collection.next_sync_token)
        self._last_token = collection.next_sync_token

        logger.debug(
            "Applied sync deltas",
            extra={
                "entries": len(collection.entries),
                "assets": len(collection.assets),
                "deleted_entries": len(collection.deleted_entries),
                "deleted_assets": len(collection.deleted_assets),
            },
        )

    async def _full_resync(self) -> None:
        """Replace the store's content with a fresh initial sync.

        An initial response does not list deletions, so incremental indexing
        could not remove content deleted while the token was stale.
        """
        collection = await self.client.sync(SyncQuery.initial_sync())
        await self.store.import_items(collection.items(), collection.next_sync_token)
        self._last_token = collection.next_sync_token

        self._full_resync_count += 1
        self._items_applied += len(collection)
        logger.info("Full resync complete", extra={"items": len(collection)})

    @property
    def stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "state": self._state.value,
            "sync_count": self._sync_count,
            "full_resync_count": self._full_resync_count,
            "items_applied": self._items_applied,
            "last_sync_ms": self._last_sync_ms,
            "last_token": self._last_token,
            "last_error": self._last_error,
        }
