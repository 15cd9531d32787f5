"""
Base protocol and types for delta-sync clients.

This module defines the SyncClient protocol that all remote clients must
implement, along with the query and response types and transport errors.

Invariants:
    - A SyncCollection groups items as entries, assets, deleted entries,
      deleted assets, in that order
    - An initial sync never reports deletions
    - A rejected continuation token surfaces as a 400 SyncRequestError

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the "Request failed with status code N" message format; the sync
      engine falls back to matching it
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

from ..store.types import SyncItem

if TYPE_CHECKING:
    from ..config import ContentfulConfig

logger = logging.getLogger(__name__)

TOKEN_INVALID_MESSAGE = "Request failed with status code 400"


class SyncError(Exception):
    """Base exception for sync client operations."""
    pass


class SyncConnectionError(SyncError):
    """Connection to the remote failed."""
    pass


class SyncRequestError(SyncError):
    """The remote answered with an unexpected HTTP status.

    Attributes:
        status_code: HTTP status returned by the remote
        url: Request URL, without credentials
    """

    def __init__(self, status_code: int, url: Optional[str] = None) -> None:
        super().__init__(f"Request failed with status code {status_code}")
        self.status_code = status_code
        self.url = url


def is_token_invalid(error: BaseException) -> bool:
    """Whether error means the continuation token was rejected.

    Prefers the structured status code and falls back to the message that
    generic HTTP clients use for a 400.
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code == 400
    return TOKEN_INVALID_MESSAGE in str(error)


@dataclass(frozen=True)
class SyncQuery:
    """Where a sync starts.

    Exactly one of initial or next_sync_token is set.

    Attributes:
        initial: Request a full listing of current content
        next_sync_token: Continue from this token
    """
    initial: bool = False
    next_sync_token: Optional[str] = None

    def __post_init__(self) -> None:
        if self.initial == bool(self.next_sync_token):
            raise ValueError("SyncQuery needs either initial=True or a next_sync_token")

    @classmethod
    def initial_sync(cls) -> SyncQuery:
        return cls(initial=True)

    @classmethod
    def from_token(cls, token: str) -> SyncQuery:
        return cls(next_sync_token=token)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire form ({"initial": True} or {"nextSyncToken": ...})."""
        if self.initial:
            return {"initial": True}
        return {"nextSyncToken": self.next_sync_token}


@dataclass
class SyncCollection:
    """Everything a sync call returned, across all pages.

    Attributes:
        entries: Created or updated entries
        assets: Created or updated assets
        deleted_entries: Entry tombstones
        deleted_assets: Asset tombstones
        next_sync_token: Token to continue from next time
    """
    next_sync_token: str
    entries: List[SyncItem] = field(default_factory=list)
    assets: List[SyncItem] = field(default_factory=list)
    deleted_entries: List[SyncItem] = field(default_factory=list)
    deleted_assets: List[SyncItem] = field(default_factory=list)

    def items(self) -> Iterator[SyncItem]:
        """Yield all items in group order."""
        yield from self.entries
        yield from self.assets
        yield from self.deleted_entries
        yield from self.deleted_assets

    def __len__(self) -> int:
        return (
            len(self.entries)
            + len(self.assets)
            + len(self.deleted_entries)
            + len(self.deleted_assets)
        )


@runtime_checkable
class SyncClient(Protocol):
    """Protocol for delta-sync remotes.

    Example:
        >>> client = HttpSyncClient(config)
        >>> await client.connect()
        >>> collection = await client.sync(SyncQuery.initial_sync())
        >>> print(len(collection), collection.next_sync_token)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Prepare the client for use.

        Raises:
            SyncConnectionError: If the client cannot be set up
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...

    @abstractmethod
    async def sync(self, query: SyncQuery) -> SyncCollection:
        """Fetch all changes since query's token, or all content if initial.

        Args:
            query: Initial or continuation query

        Returns:
            All pages merged into one SyncCollection

        Raises:
            SyncRequestError: On a non-success response (400 for a bad token)
            SyncConnectionError: If the remote is unreachable
        """
        ...


def create_sync_client(config: "ContentfulConfig") -> SyncClient:
    """Factory function to create the HTTP sync client from configuration.

    Args:
        config: Delivery API configuration

    Returns:
        HttpSyncClient for the configured space

    Raises:
        ValueError: If space or access token is missing
    """
    from .http import HttpSyncClient

    if not config.space_id or not config.access_token:
        raise ValueError("space_id and access_token are required for the HTTP sync client")

    return HttpSyncClient(
        space_id=config.space_id,
        access_token=config.access_token,
        environment=config.environment,
        base_url=config.base_url,
        timeout_seconds=config.timeout_seconds,
        max_rate_limit_wait_seconds=config.max_rate_limit_wait_seconds,
    )
