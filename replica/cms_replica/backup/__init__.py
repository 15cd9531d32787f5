"""
Backup module for the CMS replica.

Snapshots a store's content and sync token to key-value storage and
restores them on startup, so a restarted replica resumes with a delta
sync instead of a full one.

Backends:
- memory: tests and local development
- file: a local data directory
- s3: an S3 bucket (aiobotocore)

Invariants:
    - A missing backup is not an error; restore reports False
    - A corrupt backup raises BackupError and leaves the store untouched
"""

from .adapter import DEFAULT_PREFIX, BackupAdapter, supports_backup
from .storage import (
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    KeyValueStorage,
    S3KeyValueStorage,
    create_key_value_storage,
)

__all__ = [
    "BackupAdapter",
    "DEFAULT_PREFIX",
    "supports_backup",
    # Storage
    "KeyValueStorage",
    "InMemoryKeyValueStorage",
    "FileKeyValueStorage",
    "S3KeyValueStorage",
    "create_key_value_storage",
]
