"""Background replay of queued sales to the remote store."""

from __future__ import annotations

import asyncio
import logging

from posengine.app.schemas.checkout import SyncResult
from posengine.app.services.connectivity import ConnectivityMonitor
from posengine.app.services.offline_queue import OfflineQueue, to_create
from posengine.app.services.remote.client import RemoteStoreClient

logger = logging.getLogger(__name__)


class SyncDaemon:
    def __init__(
        self,
        queue: OfflineQueue,
        client: RemoteStoreClient,
        monitor: ConnectivityMonitor | None = None,
        interval_seconds: float = 30.0,
    ) -> None:
        self.queue = queue
        self.client = client
        self.monitor = monitor
        self.interval = interval_seconds
        self._syncing = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def _is_online(self) -> bool:
        return self.monitor is None or self.monitor.is_online

    async def drain(self) -> SyncResult:
        """Push every unsynced record once.

        A drain that is already running, or an offline terminal, makes this a
        no-op returning ``skipped=True``. A record that fails is marked and the
        drain moves on to the next one.
        """
        if self._syncing or not self._is_online():
            return SyncResult(skipped=True)

        self._syncing = True
        result = SyncResult()
        try:
            pending = self.queue.list_unsynced()
            if pending:
                logger.info("Syncing %d pending transaction(s)", len(pending))
            for row in pending:
                record = to_create(row)
                try:
                    await self.client.upsert_transaction(record, from_offline=True)
                    if record.order_id:
                        await self.client.convert_order(
                            record.order_id, record.id, record.payment_method
                        )
                except Exception as exc:
                    logger.warning("Sync of transaction %s failed: %s", record.id, exc)
                    self.queue.mark_failed(record.id, str(exc), row.sync_attempts + 1)
                    result.failed += 1
                    continue
                self.queue.mark_synced(record.id)
                result.synced += 1
        finally:
            self._syncing = False

        if result.synced or result.failed:
            logger.info("Sync finished: %d synced, %d failed", result.synced, result.failed)
        return result

    async def _on_connectivity(self, online: bool) -> None:
        if online:
            await self.drain()

    async def _run(self) -> None:
        while True:
            try:
                await self.drain()
            except Exception:
                logger.exception("Sync drain crashed")
            await asyncio.sleep(self.interval)

    def start(self, interval_seconds: float | None = None) -> None:
        """Drain now, then every interval, and again whenever connectivity returns."""
        if interval_seconds is not None:
            self.interval = interval_seconds
        if self.monitor is not None:
            self.monitor.add_listener(self._on_connectivity)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self.monitor is not None:
            self.monitor.remove_listener(self._on_connectivity)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
