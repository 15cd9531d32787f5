"""
Capability protocols for content stores.

Components depend on the narrowest capability they need:
- ContentStore: the read/query surface used by the link resolver and callers
- Syncable: what the sync engine needs (token + incremental index)
- Exportable: what backups and full resyncs need (bulk export/import)

All methods are coroutines so that disk-backed or networked stores can
implement them; the in-memory store satisfies all three.

How to change safely:
    - Protocol changes require updating all implementations
    - import_items() must stay atomic from the caller's point of view
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    Any,
    AsyncIterable,
    Dict,
    Iterable,
    Iterator,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

from .types import Collection, Entity, SyncItem

SyncItems = Union[Iterable[SyncItem], AsyncIterable[SyncItem]]


@runtime_checkable
class ContentStore(Protocol):
    """Read and query surface of a replica."""

    @abstractmethod
    async def get_entry(self, entry_id: str, locale: Optional[str] = None) -> Optional[Entity]:
        """Get a live entry projected to locale, or None."""
        ...

    @abstractmethod
    async def get_asset(self, asset_id: str, locale: Optional[str] = None) -> Optional[Entity]:
        """Get a live asset projected to locale, or None."""
        ...

    @abstractmethod
    async def get_entries(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        """Query live entries."""
        ...

    @abstractmethod
    async def get_assets(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        """Query live assets."""
        ...


@runtime_checkable
class Syncable(Protocol):
    """Incremental sync target."""

    @abstractmethod
    async def get_token(self) -> Optional[str]:
        """Continuation token of the last applied sync, or None."""
        ...

    @abstractmethod
    async def set_token(self, token: Optional[str]) -> None:
        ...

    @abstractmethod
    async def index(self, item: SyncItem) -> None:
        """Apply one sync item, keeping the newest version per id.

        Raises:
            UnrecognizedItemKind: If sys.type is not a known kind
        """
        ...


@runtime_checkable
class Exportable(Protocol):
    """Bulk snapshot source and target."""

    @abstractmethod
    def export(self) -> Iterator[SyncItem]:
        """Yield every stored item, tombstones included, entries first."""
        ...

    @abstractmethod
    async def import_items(self, items: SyncItems, token: Optional[str]) -> None:
        """Replace all content and the token with a full snapshot.

        The replacement is committed once items is exhausted, without
        yielding to the event loop during the commit.
        """
        ...
