"""Offline queue drain task: replays locally queued sales to the remote store."""

from __future__ import annotations

import asyncio

from posengine.app.workers.celery_app import celery


@celery.task(name="posengine.app.workers.tasks.sync.drain_pending_transactions")
def drain_pending_transactions() -> dict:
    """Probe connectivity once, then push every unsynced sale."""
    from posengine.app.core.config import settings
    from posengine.app.core.database import SessionLocal
    from posengine.app.services.connectivity import ConnectivityMonitor
    from posengine.app.services.offline_queue import OfflineQueue
    from posengine.app.services.remote.client import RemoteStoreClient
    from posengine.app.services.sync_daemon import SyncDaemon

    client = RemoteStoreClient(
        settings.REMOTE_API_URL,
        api_key=settings.REMOTE_API_KEY,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )
    monitor = ConnectivityMonitor(client.ping)
    daemon = SyncDaemon(OfflineQueue(SessionLocal), client, monitor)

    async def run() -> dict:
        await monitor.probe()
        result = await daemon.drain()
        return result.model_dump()

    return asyncio.run(run())
