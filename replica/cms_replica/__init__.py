"""
CMS Replica - a local, queryable replica of a headless CMS space.

This package keeps an in-memory copy of a content space up to date through
the delivery API's delta-sync protocol and answers queries against it:
- Sync items (entries, assets and their tombstones) are the unit of change
- The Entity Store is a derived view that can always be rebuilt by a full sync
- Links between entries are resolved on read, to a bounded depth
- Backups are full snapshots written to an opaque key-value store

Architecture:
    ┌─────────────┐  deltas   ┌─────────────┐  index()   ┌──────────────┐
    │ Sync Client │──────────▶│ Sync Engine │───────────▶│ Entity Store │
    │ (HTTP/mem)  │           └─────────────┘  import()  └──────┬───────┘
    └─────────────┘                                  ▲          │
                                                     │          ▼
    ┌─────────────┐  get/set  ┌─────────────┐ import │   ┌──────────────┐
    │  Key-Value  │◀─────────▶│   Backup    │────────┘   │ Link Resolver│
    │  Storage    │           │   Adapter   │            └──────┬───────┘
    └─────────────┘           └─────────────┘                   ▼
                                                             callers

Invariants:
    - A stored item is only replaced by an item with the same or a newer updatedAt
    - Tombstones stay in the store so stale upserts can be rejected
    - import_items() swaps entries, assets and token together, with no await in between
    - Nothing returned to a caller aliases the store's internal state

How to change safely:
    - New store backends must implement the ContentStore protocol
    - Keep the sync group order (entries, assets, deleted entries, deleted assets)
    - Verify last-writer-wins with out-of-order delta injection tests
"""

from ._version import __version__

__all__ = ["__version__"]
