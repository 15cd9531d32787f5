"""
Backup and restore of a replica store.

A backup is the store's export plus its sync token, written under two keys:
    <prefix>/entries  JSON array of every item, tombstones included
    <prefix>/token    the sync token, or "" when the store has none

Restoring imports both atomically, so the next sync continues from the
backed-up token instead of starting over.

Invariants:
    - Restore with no stored entries is a no-op
    - Restore replaces content and token together (via import_items)
    - The two keys are written concurrently; a crash between them can pair
      new entries with an old token, which the last-writer-wins rule absorbs

How to change safely:
    - Changing key names or the JSON shape orphans existing backups
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

from ..errors import BackupError
from ..store.base import Exportable, Syncable
from ..sync.engine import SyncTarget
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "cms-replica"


class BackupAdapter:
    """Persists a store's content and token to key-value storage.

    Example:
        >>> adapter = BackupAdapter(store, FileKeyValueStorage("/tmp/replica"))
        >>> await adapter.backup()
        >>> await BackupAdapter(fresh_store, storage).restore()
    """

    def __init__(
        self,
        store: SyncTarget,
        storage: KeyValueStorage,
        prefix: str = DEFAULT_PREFIX,
    ) -> None:
        """Initialize the adapter.

        Args:
            store: Store to export from and import into
            storage: Key-value storage holding the backup
            prefix: Key prefix, so several replicas can share one storage
        """
        self.store = store
        self.storage = storage
        self.prefix = prefix

        self._backup_count = 0
        self._restore_count = 0
        self._last_backup_ms: Optional[int] = None

    @property
    def entries_key(self) -> str:
        return f"{self.prefix}/entries"

    @property
    def token_key(self) -> str:
        return f"{self.prefix}/token"

    async def backup(self) -> int:
        """Write the store's content and token to storage.

        Returns:
            Number of items written
        """
        items = list(self.store.export())
        token = await self.store.get_token()

        await asyncio.gather(
            self.storage.set_item(self.entries_key, json.dumps(items)),
            self.storage.set_item(self.token_key, token or ""),
        )

        self._backup_count += 1
        self._last_backup_ms = int(time.time() * 1000)
        logger.info(
            "Backup written",
            extra={"prefix": self.prefix, "items": len(items), "has_token": bool(token)},
        )
        return len(items)

    async def restore(self) -> bool:
        """Load content and token from storage into the store.

        Returns:
            True if a backup was found and imported

        Raises:
            BackupError: If the stored entries are not a valid JSON array
        """
        raw_entries, raw_token = await asyncio.gather(
            self.storage.get_item(self.entries_key),
            self.storage.get_item(self.token_key),
        )

        if not raw_entries:
            logger.info("No backup found", extra={"prefix": self.prefix})
            return False

        try:
            items = json.loads(raw_entries)
        except json.JSONDecodeError as e:
            raise BackupError(f"Corrupt backup: {e}", key=self.entries_key) from e
        if not isinstance(items, list):
            raise BackupError("Corrupt backup: entries is not a list", key=self.entries_key)

        await self.store.import_items(items, raw_token or None)

        self._restore_count += 1
        logger.info(
            "Backup restored",
            extra={"prefix": self.prefix, "items": len(items), "has_token": bool(raw_token)},
        )
        return True

    @property
    def stats(self) -> Dict[str, Any]:
        """Get adapter statistics."""
        return {
            "prefix": self.prefix,
            "backup_count": self._backup_count,
            "restore_count": self._restore_count,
            "last_backup_ms": self._last_backup_ms,
        }


def supports_backup(store: Any) -> bool:
    """Whether store can be backed up (exportable and token-bearing)."""
    return isinstance(store, Exportable) and isinstance(store, Syncable)
