"""Promotion catalog cache for one sale session.

Loaded once (usually at shift start), then consulted synchronously by the
cart engine on every recomputation. Loading never raises: a broken remote
degrades to the local combo snapshot and to "no BOGO offers", so checkout is
never blocked by promotions.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import TypeVar

from pydantic import TypeAdapter

from posengine.app.schemas.promotions import (
    ComboDefinition,
    MultiProductBogoOffer,
    PromotionCatalog,
    SingleBogoOffer,
)
from posengine.app.services.promotions.combos import MAX_COMBO_PATTERNS, pattern_count
from posengine.app.services.promotions.snapshot import PromotionSnapshotStore
from posengine.app.services.remote.client import RemoteStoreClient

logger = logging.getLogger(__name__)

COMBO_SNAPSHOT_KIND = "combo"

_combo_list = TypeAdapter(list[ComboDefinition])

T = TypeVar("T")


class PromotionCatalogCache:
    def __init__(
        self,
        client: RemoteStoreClient,
        snapshots: PromotionSnapshotStore | None = None,
        ttl_seconds: int = 8 * 60 * 60,
    ) -> None:
        self.client = client
        self.snapshots = snapshots
        self.ttl = timedelta(seconds=ttl_seconds)
        self._catalog = PromotionCatalog()
        # Bumped on every load so per-catalog state elsewhere can be reset
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def loaded_at(self) -> datetime | None:
        return self._catalog.loaded_at

    def is_stale(self, now: datetime | None = None) -> bool:
        if self._catalog.loaded_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - self._catalog.loaded_at > self.ttl

    def get(self, now: datetime | None = None) -> PromotionCatalog:
        """Last-loaded catalog minus offers whose window has closed since."""
        return self._catalog.without_ended(now or datetime.now(timezone.utc))

    async def load(self, now: datetime | None = None) -> PromotionCatalog:
        now = now or datetime.now(timezone.utc)

        combos = self._matchable(await self._load_combos())
        singles = await self._load_or_empty(
            "single-product BOGO", self.client.fetch_single_bogo_offers
        )
        multis = await self._load_or_empty(
            "multi-product BOGO", self.client.fetch_multi_bogo_offers
        )

        active_singles: list[SingleBogoOffer] = [o for o in singles if o.window.contains(now)]
        active_multis: list[MultiProductBogoOffer] = [o for o in multis if o.window.contains(now)]

        self._catalog = PromotionCatalog(
            promotions=(*combos, *active_singles, *active_multis),
            loaded_at=now,
        )
        self._generation += 1
        logger.info(
            "Promotion catalog loaded: %d combos, %d BOGO, %d multi-product BOGO",
            len(combos),
            len(active_singles),
            len(active_multis),
        )
        return self._catalog

    async def refresh(self) -> PromotionCatalog:
        return await self.load()

    async def _load_combos(self) -> list[ComboDefinition]:
        try:
            combos = await self.client.fetch_combo_offers()
        except Exception as exc:
            logger.warning("Combo offers unavailable (%s); using local snapshot", exc)
            return self._combo_snapshot()

        if self.snapshots is not None:
            try:
                self.snapshots.save(
                    COMBO_SNAPSHOT_KIND, _combo_list.dump_python(combos, mode="json")
                )
            except Exception:
                logger.exception("Failed to store combo snapshot")
        return combos

    @staticmethod
    def _matchable(combos: list[ComboDefinition]) -> list[ComboDefinition]:
        kept = []
        for combo in combos:
            if pattern_count(combo) > MAX_COMBO_PATTERNS:
                logger.warning(
                    "Skipping combo %s: %d constituents over a bundle of %d is too large to match",
                    combo.id,
                    len(combo.constituents),
                    combo.bundle_size,
                )
                continue
            kept.append(combo)
        return kept

    def _combo_snapshot(self) -> list[ComboDefinition]:
        if self.snapshots is None:
            return []
        try:
            payload = self.snapshots.load(COMBO_SNAPSHOT_KIND)
        except Exception:
            logger.exception("Failed to read combo snapshot")
            return []
        if not payload:
            return []
        return _combo_list.validate_python(payload)

    @staticmethod
    async def _load_or_empty(label: str, fetch: Callable[[], Awaitable[list[T]]]) -> list[T]:
        try:
            return await fetch()
        except Exception as exc:
            logger.warning("%s offers unavailable (%s); continuing without them", label, exc)
            return []
