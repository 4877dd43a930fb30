"""Wiring of the per-terminal services shared by the API and the worker."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from posengine.app.core.config import Settings, settings
from posengine.app.core.database import SessionLocal
from posengine.app.services.cart_engine import CachedProductResolver, CartEngine
from posengine.app.services.checkout import CheckoutService
from posengine.app.services.connectivity import ConnectivityMonitor
from posengine.app.services.offline_queue import OfflineQueue
from posengine.app.services.promotions.catalog import PromotionCatalogCache
from posengine.app.services.promotions.snapshot import PromotionSnapshotStore
from posengine.app.services.remote.client import RemoteStoreClient
from posengine.app.services.sync_daemon import SyncDaemon
from posengine.app.services.tax import get_tax_function

logger = logging.getLogger(__name__)


@dataclass
class PosServices:
    client: RemoteStoreClient
    catalog: PromotionCatalogCache
    engine: CartEngine
    queue: OfflineQueue
    monitor: ConnectivityMonitor
    daemon: SyncDaemon
    checkout: CheckoutService
    store_id: str = ""
    # Monitor and daemon loops only run when set
    run_background: bool = True

    @classmethod
    def build(
        cls,
        config: Settings = settings,
        session_factory: sessionmaker[Session] = SessionLocal,
        client: RemoteStoreClient | None = None,
        run_background: bool = True,
    ) -> "PosServices":
        client = client or RemoteStoreClient(
            config.REMOTE_API_URL,
            api_key=config.REMOTE_API_KEY,
            timeout=config.REMOTE_TIMEOUT_SECONDS,
        )
        catalog = PromotionCatalogCache(
            client,
            snapshots=PromotionSnapshotStore(session_factory),
            ttl_seconds=config.PROMOTION_CACHE_TTL_SECONDS,
        )
        engine = CartEngine(
            catalog,
            CachedProductResolver(client.fetch_product, catalog),
            record_usage=client.increment_bogo_usage,
            add_delay=config.ADD_DEBOUNCE_MS / 1000,
            change_delay=config.CHANGE_DEBOUNCE_MS / 1000,
        )
        queue = OfflineQueue(session_factory)
        monitor = ConnectivityMonitor(client.ping, interval=config.CONNECTIVITY_PROBE_SECONDS)
        daemon = SyncDaemon(queue, client, monitor, interval_seconds=config.SYNC_INTERVAL_SECONDS)
        checkout = CheckoutService(
            engine,
            queue,
            client,
            monitor,
            tax_function=get_tax_function(config.TAX_SCHEME),
        )
        return cls(
            client=client,
            catalog=catalog,
            engine=engine,
            queue=queue,
            monitor=monitor,
            daemon=daemon,
            checkout=checkout,
            store_id=config.STORE_ID,
            run_background=run_background,
        )

    async def startup(self) -> None:
        await self.catalog.load()
        if self.run_background:
            self.monitor.start()
            self.daemon.start()
        logger.info("POS services started (store %s)", self.store_id or "-")

    async def shutdown(self) -> None:
        if self.run_background:
            await self.daemon.stop()
            await self.monitor.stop()
        await self.engine.flush()
        logger.info("POS services stopped")
