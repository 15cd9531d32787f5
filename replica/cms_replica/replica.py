"""
Replica composition.

A Replica ties together a store and the optional capabilities layered on
top of it:

    Replica
      ├── store         (InMemoryEntityStore or any ContentStore)
      ├── resolver      (LinkResolver over the store, always present)
      ├── sync_engine   (optional, SyncEngine)
      └── backup        (optional, BackupAdapter)

Capabilities are fixed at construction and published as a Capabilities
record, so callers can check what a replica supports without probing.

Invariants:
    - Startup restores before it syncs, so a sync continues from the
      backed-up token
    - Startup never fails because of restore or sync; both are logged and
      the replica serves whatever it has
    - resync() propagates sync failures; a backup failure after a
      successful sync is only logged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .backup.adapter import BackupAdapter
from .errors import CapabilityError, MissingArgument
from .resolve.resolver import LinkResolver
from .store.base import ContentStore
from .store.entity_store import InMemoryEntityStore
from .store.types import Collection, Entity
from .sync.engine import SyncEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """Optional capabilities a Replica was built with."""

    sync: bool = False
    backup: bool = False


class Replica:
    """A queryable local replica with optional sync and backup.

    Example:
        >>> store = InMemoryEntityStore()
        >>> replica = Replica(
        ...     store,
        ...     sync_engine=SyncEngine(store, client),
        ...     backup=BackupAdapter(store, storage),
        ... )
        >>> await replica.initialize()
        >>> talk = await replica.find_entry("talk-1", include=1)
    """

    def __init__(
        self,
        store: ContentStore,
        sync_engine: Optional[SyncEngine] = None,
        backup: Optional[BackupAdapter] = None,
    ) -> None:
        """Initialize the replica.

        Args:
            store: Store to serve queries from
            sync_engine: Engine keeping store in sync with the remote
            backup: Adapter persisting store between restarts
        """
        self.store = store
        self.resolver = LinkResolver(store)
        self.sync_engine = sync_engine
        self.backup = backup
        self.capabilities = Capabilities(
            sync=sync_engine is not None,
            backup=backup is not None,
        )

    async def initialize(self) -> None:
        """Restore from backup, then sync, logging any failure."""
        if self.backup is not None:
            try:
                await self.backup.restore()
            except Exception as e:
                logger.error(
                    f"Restore failed, falling back to full sync: {e}",
                    exc_info=True,
                )

        if self.sync_engine is not None:
            try:
                await self.sync_engine.sync()
            except Exception as e:
                logger.error(f"Initial sync failed: {e}", exc_info=True)

        logger.info(
            "Replica initialized",
            extra={"sync": self.capabilities.sync, "backup": self.capabilities.backup},
        )

    async def resync(self) -> None:
        """Sync with the remote, then back up the result.

        Raises:
            CapabilityError: If the replica was built without sync
            Exception: Any sync failure, unchanged
        """
        if self.sync_engine is None:
            raise CapabilityError("sync")

        await self.sync_engine.sync()

        if self.backup is not None:
            try:
                await self.backup.backup()
            except Exception as e:
                logger.error(f"Backup after sync failed: {e}", exc_info=True)

    async def find_entry(
        self,
        entry_id: str,
        locale: Optional[str] = None,
        include: int = 0,
    ) -> Optional[Entity]:
        """Get one entry by id with links resolved to include levels.

        Raises:
            MissingArgument: If entry_id is empty
            MaxDepthExceeded: If include is above the resolver's limit
        """
        if not entry_id:
            raise MissingArgument("ID")
        return await self.resolver.get_entry(entry_id, locale=locale, include=include)

    async def find_asset(self, asset_id: str, locale: Optional[str] = None) -> Optional[Entity]:
        """Get one asset by id.

        Raises:
            MissingArgument: If asset_id is empty
        """
        if not asset_id:
            raise MissingArgument("ID")
        return await self.resolver.get_asset(asset_id, locale=locale)

    async def get_entries(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        return await self.resolver.get_entries(query)

    async def get_assets(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        return await self.resolver.get_assets(query)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get replica statistics."""
        stats: Dict[str, Any] = {
            "capabilities": {
                "sync": self.capabilities.sync,
                "backup": self.capabilities.backup,
            },
        }
        if isinstance(self.store, InMemoryEntityStore):
            stats["store"] = self.store.count()
        if self.sync_engine is not None:
            stats["sync"] = self.sync_engine.stats
        if self.backup is not None:
            stats["backup"] = self.backup.stats
        return stats
