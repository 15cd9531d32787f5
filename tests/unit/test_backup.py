"""
Unit tests for backup and restore.

Tests cover:
- Backup/restore round trip
- Restore with nothing stored
- Corrupt backups
- File storage
- S3 storage against a mocked client
- Storage factory
"""

import json
import tempfile
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from replica.cms_replica.backup import (
    BackupAdapter,
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    KeyValueStorage,
    S3KeyValueStorage,
    create_key_value_storage,
    supports_backup,
)
from replica.cms_replica.config import BackupBackend, BackupConfig, S3Config
from replica.cms_replica.errors import BackupError
from replica.cms_replica.store import InMemoryEntityStore
from tests.factories import localized, make_asset, make_deleted_entry, make_entry


@pytest.fixture
def storage():
    """In-memory key-value storage."""
    return InMemoryKeyValueStorage()


@pytest.fixture
def store():
    """Create an empty store."""
    return InMemoryEntityStore()


class TestBackupAdapter:
    """Tests for BackupAdapter."""

    @pytest.mark.asyncio
    async def test_backup_writes_both_keys(self, store, storage):
        """Entries and token land under <prefix>/entries and <prefix>/token."""
        await store.index(make_entry("e1"))
        await store.set_token("T1")

        count = await BackupAdapter(store, storage, prefix="site").backup()

        assert count == 1
        assert storage.keys() == ["site/entries", "site/token"]
        assert await storage.get_item("site/token") == "T1"
        assert len(json.loads(await storage.get_item("site/entries"))) == 1

    @pytest.mark.asyncio
    async def test_round_trip(self, store, storage):
        """backup() then restore() into a fresh store reproduces it."""
        await store.index(make_entry("e1", fields={"title": localized("Hello")}))
        await store.index(make_asset("a1"))
        await store.index(make_deleted_entry("gone"))
        await store.set_token("T1")
        await BackupAdapter(store, storage).backup()

        fresh = InMemoryEntityStore()
        restored = await BackupAdapter(fresh, storage).restore()

        assert restored is True
        assert list(fresh.export()) == list(store.export())
        assert await fresh.get_token() == "T1"
        assert (await fresh.get_entry("e1"))["fields"]["title"] == "Hello"

    @pytest.mark.asyncio
    async def test_restore_without_backup_is_noop(self, store, storage):
        """Nothing stored means nothing to restore."""
        await store.index(make_entry("keep"))

        restored = await BackupAdapter(store, storage).restore()

        assert restored is False
        assert await store.get_entry("keep") is not None

    @pytest.mark.asyncio
    async def test_restore_empty_token_is_none(self, store, storage):
        """A backup taken before any sync restores with no token."""
        await store.index(make_entry("e1"))
        await BackupAdapter(store, storage).backup()

        fresh = InMemoryEntityStore()
        await BackupAdapter(fresh, storage).restore()

        assert await fresh.get_token() is None
        assert await fresh.get_entry("e1") is not None

    @pytest.mark.asyncio
    async def test_corrupt_backup_raises(self, store, storage):
        """Invalid JSON raises BackupError and leaves the store unchanged."""
        await store.index(make_entry("keep"))
        await storage.set_item("cms-replica/entries", "{not json")

        with pytest.raises(BackupError) as exc_info:
            await BackupAdapter(store, storage).restore()

        assert exc_info.value.key == "cms-replica/entries"
        assert await store.get_entry("keep") is not None

    @pytest.mark.asyncio
    async def test_non_list_backup_raises(self, store, storage):
        """Entries must be a JSON array."""
        await storage.set_item("cms-replica/entries", '{"sys": {}}')

        with pytest.raises(BackupError):
            await BackupAdapter(store, storage).restore()

    @pytest.mark.asyncio
    async def test_stats(self, store, storage):
        """Stats count backups and restores."""
        await store.index(make_entry("e1"))
        adapter = BackupAdapter(store, storage)
        await adapter.backup()
        await adapter.restore()

        assert adapter.stats["backup_count"] == 1
        assert adapter.stats["restore_count"] == 1
        assert adapter.stats["last_backup_ms"] is not None

    def test_supports_backup(self, store):
        """The in-memory store is exportable and token-bearing."""
        assert supports_backup(store)
        assert not supports_backup(object())


class TestFileKeyValueStorage:
    """Tests for FileKeyValueStorage."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, data_dir):
        """Reading a key never written returns None."""
        storage = FileKeyValueStorage(data_dir)

        assert await storage.get_item("cms-replica/token") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, data_dir):
        """Values survive a new storage instance over the same directory."""
        await FileKeyValueStorage(data_dir).set_item("cms-replica/token", "T1")

        assert await FileKeyValueStorage(data_dir).get_item("cms-replica/token") == "T1"

    @pytest.mark.asyncio
    async def test_overwrite(self, data_dir):
        """set_item replaces the previous value."""
        storage = FileKeyValueStorage(data_dir)
        await storage.set_item("k", "one")
        await storage.set_item("k", "two")

        assert await storage.get_item("k") == "two"

    def test_key_is_sanitized(self, data_dir):
        """Keys map to a single file inside the data directory."""
        storage = FileKeyValueStorage(data_dir)

        path = storage.path_for("../site/entries")

        assert path.parent == storage.data_dir
        assert "/" not in path.name

    @pytest.mark.asyncio
    async def test_creates_data_dir(self, data_dir):
        """The directory is created on first write."""
        storage = FileKeyValueStorage(f"{data_dir}/nested/dir")
        await storage.set_item("k", "v")

        assert await storage.get_item("k") == "v"

    @pytest.mark.asyncio
    async def test_round_trip_through_files(self, data_dir, store):
        """A full backup/restore cycle works over file storage."""
        await store.index(make_entry("e1"))
        await store.set_token("T9")
        await BackupAdapter(store, FileKeyValueStorage(data_dir)).backup()

        fresh = InMemoryEntityStore()
        await BackupAdapter(fresh, FileKeyValueStorage(data_dir)).restore()

        assert await fresh.get_token() == "T9"
        assert await fresh.get_entry("e1") is not None


class TestS3KeyValueStorage:
    """Tests for S3KeyValueStorage with a mocked aiobotocore client."""

    @pytest.fixture
    def s3(self):
        """Mocked S3 client."""
        client = MagicMock()
        client.get_object = AsyncMock()
        client.put_object = AsyncMock()
        return client

    @pytest.fixture
    def storage(self, s3):
        """S3 storage already holding the mocked client."""
        storage = S3KeyValueStorage(S3Config(bucket="backups"))
        storage._s3_ctx = MagicMock()
        storage._s3_ctx.__aexit__ = AsyncMock(return_value=None)
        storage._s3_client = s3
        return storage

    @pytest.mark.asyncio
    async def test_get_item(self, storage, s3):
        """The object body is returned as text."""
        body = MagicMock()
        body.read = AsyncMock(return_value=b"T1")
        s3.get_object.return_value = {"Body": body}

        assert await storage.get_item("cms-replica/token") == "T1"
        s3.get_object.assert_awaited_once_with(Bucket="backups", Key="cms-replica/token")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["NoSuchKey", "404", "NotFound"])
    async def test_missing_object_is_none(self, storage, s3, code):
        """Missing-object error codes read as None."""
        s3.get_object.side_effect = ClientError({"Error": {"Code": code}}, "GetObject")

        assert await storage.get_item("cms-replica/entries") is None

    @pytest.mark.asyncio
    async def test_read_error_becomes_backup_error(self, storage, s3):
        """Other client errors are raised as BackupError carrying the key."""
        s3.get_object.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject")

        with pytest.raises(BackupError) as exc_info:
            await storage.get_item("cms-replica/entries")

        assert exc_info.value.details["key"] == "cms-replica/entries"

    @pytest.mark.asyncio
    async def test_set_item(self, storage, s3):
        """Values are written as UTF-8 JSON objects."""
        await storage.set_item("cms-replica/token", "T1")

        s3.put_object.assert_awaited_once_with(
            Bucket="backups",
            Key="cms-replica/token",
            Body=b"T1",
            ContentType="application/json",
        )

    @pytest.mark.asyncio
    async def test_write_error_becomes_backup_error(self, storage, s3):
        """A failed put is raised as BackupError."""
        s3.put_object.side_effect = ClientError({"Error": {"Code": "SlowDown"}}, "PutObject")

        with pytest.raises(BackupError):
            await storage.set_item("cms-replica/token", "T1")

    @pytest.mark.asyncio
    async def test_close_exits_client(self, storage):
        """close() exits the client context once."""
        ctx = storage._s3_ctx

        await storage.close()
        await storage.close()

        ctx.__aexit__.assert_awaited_once_with(None, None, None)
        assert storage._s3_client is None

class TestStorageFactory:
    """Tests for create_key_value_storage()."""

    def test_memory(self):
        storage = create_key_value_storage(BackupConfig(backend=BackupBackend.MEMORY))
        assert isinstance(storage, InMemoryKeyValueStorage)
        assert isinstance(storage, KeyValueStorage)

    def test_file(self):
        storage = create_key_value_storage(
            BackupConfig(backend=BackupBackend.FILE, data_dir="/tmp/replica-test")
        )
        assert isinstance(storage, FileKeyValueStorage)
        assert str(storage.data_dir) == "/tmp/replica-test"

    def test_s3(self):
        """The S3 client is created lazily, so construction needs no network."""
        storage = create_key_value_storage(
            BackupConfig(backend=BackupBackend.S3),
            S3Config(bucket="backups"),
        )
        assert isinstance(storage, S3KeyValueStorage)
        assert storage.config.bucket == "backups"

    def test_s3_requires_config(self):
        with pytest.raises(ValueError):
            create_key_value_storage(BackupConfig(backend=BackupBackend.S3))
