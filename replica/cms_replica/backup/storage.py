"""
Key-value storage backends for replica backups.

A backup is two string values under two keys. This module provides the
storage those values live in:
- InMemoryKeyValueStorage: tests and local development
- FileKeyValueStorage: one file per key in a data directory
- S3KeyValueStorage: one object per key in an S3 bucket (aiobotocore)

Invariants:
    - get_item returns None for a key that was never written
    - set_item replaces the whole value; readers never see a partial write

How to change safely:
    - New backends must implement the KeyValueStorage protocol
    - Keep key-to-path mapping stable, or existing backups become invisible
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from abc import abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from ..config import BackupBackend, BackupConfig, S3Config
from ..errors import BackupError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStorage(Protocol):
    """Async string key-value storage."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Read the value for key, or None if it was never written."""
        ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Write value under key, replacing any previous value."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any connections held by the storage."""
        ...


class InMemoryKeyValueStorage:
    """Dict-backed KeyValueStorage."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def close(self) -> None:
        pass

    # Testing helpers

    def keys(self) -> list[str]:
        return sorted(self._items)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileKeyValueStorage:
    """KeyValueStorage with one file per key.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a crash mid-write leaves the old value intact.
    Blocking file I/O runs in a worker thread.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, key: str) -> Path:
        """File holding the value for key."""
        return self.data_dir / (_UNSAFE_CHARS.sub("_", key) + ".json")

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self.path_for(key), value)

    async def close(self) -> None:
        pass

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, value: str) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class S3KeyValueStorage:
    """KeyValueStorage with one S3 object per key.

    The client is created lazily on first use and reused until close().
    """

    def __init__(self, config: S3Config) -> None:
        self.config = config
        self._session: Any = None
        self._s3_ctx: Any = None
        self._s3_client: Any = None
        self._connect_lock = asyncio.Lock()

    async def _client(self) -> Any:
        async with self._connect_lock:
            if self._s3_client is None:
                await self._connect()
        return self._s3_client

    async def _connect(self) -> None:
        self._session = get_session()

        client_kwargs: Dict[str, Any] = {
            "region_name": self.config.region,
        }
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url
        if self.config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        self._s3_ctx = self._session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()
        logger.info("S3 backup storage connected", extra={"bucket": self.config.bucket})

    async def get_item(self, key: str) -> Optional[str]:
        s3 = await self._client()
        try:
            response = await s3.get_object(Bucket=self.config.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound"):
                return None
            raise BackupError(f"Failed to read backup object: {e}", key=key) from e

        content = await response["Body"].read()
        return content.decode("utf-8")

    async def set_item(self, key: str, value: str) -> None:
        s3 = await self._client()
        try:
            await s3.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=value.encode("utf-8"),
                ContentType="application/json",
            )
        except ClientError as e:
            raise BackupError(f"Failed to write backup object: {e}", key=key) from e

    async def close(self) -> None:
        if self._s3_client is not None:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None


def create_key_value_storage(
    backup_config: BackupConfig,
    s3_config: Optional[S3Config] = None,
) -> KeyValueStorage:
    """Create a storage backend for the configured backup backend.

    Args:
        backup_config: Backup configuration
        s3_config: S3 configuration, required for the S3 backend

    Returns:
        KeyValueStorage instance

    Raises:
        ValueError: If the S3 backend is selected without s3_config
    """
    if backup_config.backend == BackupBackend.MEMORY:
        return InMemoryKeyValueStorage()
    if backup_config.backend == BackupBackend.FILE:
        return FileKeyValueStorage(backup_config.data_dir)
    if backup_config.backend == BackupBackend.S3:
        if s3_config is None:
            raise ValueError("S3 configuration required for S3 backup backend")
        return S3KeyValueStorage(s3_config)
    raise ValueError(f"Unsupported backup backend: {backup_config.backend}")
