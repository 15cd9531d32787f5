"""
Delta-sync for the CMS replica.

This module provides a pluggable remote client interface supporting:
- The delivery API over HTTP (production)
- An in-memory remote (testing and local development)

and the SyncEngine that feeds remote deltas into a store.

Invariants:
    - The remote is the source of truth; the store is a derived view
    - A rejected token triggers a full resync, never a partial one
    - Clients own retry and rate-limit handling; the engine never retries

How to change safely:
    - New remotes must implement the SyncClient protocol
    - Verify token expiry handling against the in-memory remote
"""

from .base import (
    SyncClient,
    SyncCollection,
    SyncConnectionError,
    SyncError,
    SyncQuery,
    SyncRequestError,
    create_sync_client,
    is_token_invalid,
)
from .engine import SyncEngine, SyncState
from .http import HttpSyncClient
from .memory import InMemorySyncClient

__all__ = [
    # Protocol and types
    "SyncClient",
    "SyncQuery",
    "SyncCollection",
    "SyncError",
    "SyncConnectionError",
    "SyncRequestError",
    "is_token_invalid",
    # Factory
    "create_sync_client",
    # Implementations
    "HttpSyncClient",
    "InMemorySyncClient",
    # Driver
    "SyncEngine",
    "SyncState",
]
