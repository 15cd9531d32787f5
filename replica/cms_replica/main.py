"""
CMS Replica - Main entry point.

This module runs a long-lived replica process:
- Restore from backup (if enabled)
- Initial or delta sync against the delivery API (if enabled)
- Periodic resync, each followed by a backup

Usage:
    python -m replica.cms_replica.main
    cms-replica

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Only this module reads the environment; components get explicit config
    - A failed periodic sync is logged and retried on the next tick
    - Shutdown closes the remote client and backup storage

How to change safely:
    - Add new components behind enable flags in config.py
    - Test shutdown sequence with a sync in flight
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .backup import BackupAdapter, KeyValueStorage, create_key_value_storage
from .config import ReplicaConfig
from .replica import Replica
from .store import InMemoryEntityStore
from .sync import SyncClient, SyncEngine, create_sync_client

logger = logging.getLogger(__name__)


def setup_logging(config: ReplicaConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Replica configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class ReplicaService:
    """Replica process orchestrator.

    Manages the lifecycle of:
    - The remote sync client
    - Backup storage
    - The periodic resync loop

    Attributes:
        config: Replica configuration
        replica: The composed replica (after start())
        client: Remote sync client, if sync is enabled
        storage: Backup storage, if backup is enabled

    Example:
        >>> service = ReplicaService(config)
        >>> await service.start()   # returns after request_shutdown()
        >>> await service.stop()
    """

    def __init__(self, config: ReplicaConfig) -> None:
        """Initialize the service.

        Args:
            config: Replica configuration
        """
        self.config = config
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.replica: Replica | None = None
        self.client: SyncClient | None = None
        self.storage: KeyValueStorage | None = None

        self._tasks: list[asyncio.Task] = []

    def build(self) -> Replica:
        """Create the store and its configured capabilities."""
        store = InMemoryEntityStore(default_locale=self.config.store.default_locale)

        sync_engine = None
        if self.config.sync.enabled:
            self.client = create_sync_client(self.config.contentful)
            sync_engine = SyncEngine(store, self.client)

        backup = None
        if self.config.backup.enabled:
            self.storage = create_key_value_storage(self.config.backup, self.config.s3)
            backup = BackupAdapter(store, self.storage, prefix=self.config.backup.prefix)

        self.replica = Replica(store, sync_engine=sync_engine, backup=backup)
        return self.replica

    async def start(self) -> None:
        """Start the replica and run until shutdown is requested."""
        if self._running:
            logger.warning("Replica service already running")
            return

        logger.info("Starting replica service")
        self.config.log_config()

        try:
            replica = self.build()
            if self.client is not None:
                await self.client.connect()
            self._running = True

            await replica.initialize()

            if replica.capabilities.sync:
                self._tasks.append(asyncio.create_task(self._sync_loop(replica)))

            logger.info("Replica service started", extra=replica.stats)

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Replica service startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def _sync_loop(self, replica: Replica) -> None:
        interval = self.config.sync.interval_seconds
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass

            try:
                await replica.resync()
            except Exception as e:
                logger.error(f"Periodic sync failed: {e}", exc_info=True)

    async def stop(self) -> None:
        """Stop the service gracefully."""
        if not self._running:
            return

        logger.info("Stopping replica service")

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self.client is not None:
            await self.client.close()

        if self.storage is not None:
            await self.storage.close()

        self._running = False
        logger.info("Replica service stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ReplicaConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    service = ReplicaService(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        service.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
