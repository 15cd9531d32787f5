"""
Configuration management for the CMS replica.

Library classes never read the environment themselves: they take explicit
values. The service entry point builds a ReplicaConfig from environment
variables and passes the sections down.

Invariants:
    - All settings have sensible defaults for local development
    - Access tokens and S3 secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() as the only place that touches os.environ
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class BackupBackend(Enum):
    """Supported key-value backends for backups."""

    MEMORY = "memory"
    FILE = "file"
    S3 = "s3"


@dataclass(frozen=True)
class StoreConfig:
    """Entity store configuration.

    Attributes:
        default_locale: Locale used for projection when none is requested,
            and as the fallback for fields missing in the requested locale
    """

    default_locale: str = "en-US"

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(default_locale=os.getenv("REPLICA_DEFAULT_LOCALE", "en-US"))


@dataclass(frozen=True)
class ContentfulConfig:
    """Delivery API connection used by the HTTP sync client.

    Attributes:
        base_url: API base URL
        space_id: Space identifier
        environment: Environment identifier
        access_token: Delivery API access token
        timeout_seconds: Per-request timeout
        max_rate_limit_wait_seconds: Longest wait honoured for a 429 reset header
    """

    base_url: str = "https://cdn.contentful.com"
    space_id: str | None = None
    environment: str = "master"
    access_token: str | None = None
    timeout_seconds: float = 30.0
    max_rate_limit_wait_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> ContentfulConfig:
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("CONTENTFUL_BASE_URL", "https://cdn.contentful.com"),
            space_id=os.getenv("CONTENTFUL_SPACE_ID"),
            environment=os.getenv("CONTENTFUL_ENVIRONMENT", "master"),
            access_token=os.getenv("CONTENTFUL_ACCESS_TOKEN"),
            timeout_seconds=float(os.getenv("CONTENTFUL_TIMEOUT_SECONDS", "30")),
            max_rate_limit_wait_seconds=float(os.getenv("CONTENTFUL_MAX_RATE_LIMIT_WAIT", "60")),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Sync loop configuration.

    Attributes:
        enabled: Whether the service syncs at all
        interval_seconds: Delay between incremental syncs
    """

    enabled: bool = True
    interval_seconds: float = 300

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=os.getenv("SYNC_ENABLED", "true").lower() == "true",
            interval_seconds=float(os.getenv("SYNC_INTERVAL_SECONDS", "300")),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for the s3 backup backend.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "cms-replica"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", "cms-replica"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class BackupConfig:
    """Backup configuration.

    Attributes:
        enabled: Whether to restore on start and back up after each sync
        backend: Key-value backend holding the backup
        prefix: Key prefix; keys are "<prefix>/entries" and "<prefix>/token"
        data_dir: Directory for the file backend
    """

    enabled: bool = True
    backend: BackupBackend = BackupBackend.FILE
    prefix: str = "cms-replica"
    data_dir: str = "/var/lib/cms-replica"

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If BACKUP_BACKEND is not a known backend.
        """
        backend_str = os.getenv("BACKUP_BACKEND", "file").lower()
        try:
            backend = BackupBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid BACKUP_BACKEND '{backend_str}'. Must be one of: memory, file, s3"
            )

        return cls(
            enabled=os.getenv("BACKUP_ENABLED", "true").lower() == "true",
            backend=backend,
            prefix=os.getenv("BACKUP_PREFIX", "cms-replica"),
            data_dir=os.getenv("DATA_DIR", "/var/lib/cms-replica"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ReplicaConfig:
    """Complete replica configuration.

    Attributes:
        store: Entity store configuration
        contentful: Delivery API connection
        sync: Sync loop configuration
        backup: Backup configuration
        s3: S3 configuration (if backup.backend is S3)
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    contentful: ContentfulConfig = field(default_factory=ContentfulConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    s3: S3Config = field(default_factory=S3Config)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ReplicaConfig:
        """Load complete configuration from environment variables.

        Returns:
            ReplicaConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            contentful=ContentfulConfig.from_env(),
            sync=SyncConfig.from_env(),
            backup=BackupConfig.from_env(),
            s3=S3Config.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.sync.enabled:
            if not self.contentful.space_id:
                raise ValueError("CONTENTFUL_SPACE_ID is required when SYNC_ENABLED=true")
            if not self.contentful.access_token:
                raise ValueError("CONTENTFUL_ACCESS_TOKEN is required when SYNC_ENABLED=true")
            if self.sync.interval_seconds <= 0:
                raise ValueError("SYNC_INTERVAL_SECONDS must be positive")

        if self.backup.enabled:
            if not self.backup.prefix:
                raise ValueError("BACKUP_PREFIX must not be empty when BACKUP_ENABLED=true")
            if self.backup.backend == BackupBackend.S3 and not self.s3.bucket:
                raise ValueError("S3_BUCKET is required when BACKUP_BACKEND=s3")

        if not self.store.default_locale:
            raise ValueError("REPLICA_DEFAULT_LOCALE must not be empty")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Replica configuration loaded",
            extra={
                "default_locale": self.store.default_locale,
                "base_url": self.contentful.base_url,
                "space_id": self.contentful.space_id,
                "environment": self.contentful.environment,
                "sync_enabled": self.sync.enabled,
                "sync_interval_seconds": self.sync.interval_seconds,
                "backup_enabled": self.backup.enabled,
                "backup_backend": self.backup.backend.value,
                "backup_prefix": self.backup.prefix,
                "s3_bucket": self.s3.bucket
                if self.backup.backend == BackupBackend.S3
                else None,
                "log_level": self.observability.log_level,
            },
        )
