"""Cart state and debounced promotion recomputation for one terminal.

Edits are applied to the visible cart immediately; promotions are recomputed
after a quiet period (trailing debounce) so rapid barcode scans do not each
trigger remote lookups. Recomputation either replaces the whole cart or leaves
it untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any

from posengine.app.schemas.cart import CartLine, ProductRef
from posengine.app.schemas.promotions import PromotionCatalog
from posengine.app.services.promotions.catalog import PromotionCatalogCache
from posengine.app.services.promotions.offers import ProductResolver, recompute_offers
from posengine.app.services.remote.client import ResolvedProduct

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

UsageRecorder = Callable[[str, int], Awaitable[Any]]


class CachedProductResolver:
    """Resolves BOGO get-side products, remembering answers until *catalog* reloads."""

    def __init__(
        self,
        fetch: Callable[[ProductRef], Awaitable[ResolvedProduct]],
        catalog: PromotionCatalogCache | None = None,
    ) -> None:
        self._fetch = fetch
        self._catalog = catalog
        self._generation = catalog.generation if catalog is not None else 0
        self._cache: dict[ProductRef, ResolvedProduct] = {}

    async def __call__(self, ref: ProductRef) -> ResolvedProduct:
        if self._catalog is not None and self._catalog.generation != self._generation:
            self._generation = self._catalog.generation
            self._cache.clear()
        cached = self._cache.get(ref)
        if cached is not None:
            return cached
        product = await self._fetch(ref)
        self._cache[ref] = product
        return product


class CartEngine:
    def __init__(
        self,
        catalog: PromotionCatalogCache,
        resolve: ProductResolver,
        record_usage: UsageRecorder | None = None,
        add_delay: float = 0.3,
        change_delay: float = 0.15,
    ) -> None:
        self.catalog = catalog
        self._resolve = resolve
        self._record_usage = record_usage
        self.add_delay = add_delay
        self.change_delay = change_delay

        self._lines: list[CartLine] = []
        self._bill_discount = ZERO
        # Bumped by every mutation; a recompute result built from an older
        # version is stale and must not be published.
        self._version = 0
        self._dirty = False
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        # offer id -> uses already recorded remotely for this sale
        self._recorded_uses: dict[str, int] = {}
        # offer id -> uses this terminal recorded since the catalog was loaded,
        # across sales
        self._tally: dict[str, int] = {}
        # offer id -> last count reported by the remote usage counter
        self._remote_counts: dict[str, int] = {}
        self._catalog_generation = catalog.generation
        self._usage_tasks: set[asyncio.Task[Any]] = set()

    # ── Read side ───────────────────────────────────────────────────────

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def bill_discount(self) -> Decimal:
        return self._bill_discount

    @property
    def recompute_pending(self) -> bool:
        return self._dirty or self._timer is not None or (
            self._task is not None and not self._task.done()
        )

    def is_empty(self) -> bool:
        return not self._lines

    def _index(self, line_id: str) -> int:
        for i, line in enumerate(self._lines):
            if line.id == line_id:
                return i
        raise KeyError(line_id)

    def get_line(self, line_id: str) -> CartLine:
        return self._lines[self._index(line_id)]

    # ── Mutations ───────────────────────────────────────────────────────

    def _publish(self, lines: list[CartLine]) -> None:
        self._lines = lines
        self._version += 1

    def _replace(self, line_id: str, **update: Any) -> None:
        idx = self._index(line_id)
        lines = list(self._lines)
        lines[idx] = lines[idx].model_copy(update=update)
        self._publish(lines)

    def add_line(self, item: CartLine) -> None:
        """Add *item*, merging into an existing regular line with the same id."""
        lines = list(self._lines)
        for i, line in enumerate(lines):
            if line.id == item.id and line.is_regular:
                lines[i] = line.model_copy(update={"quantity": line.quantity + item.quantity})
                break
        else:
            lines.append(item)
        self._publish(lines)
        self._schedule(self.add_delay)

    def remove_line(self, line_id: str) -> None:
        idx = self._index(line_id)
        lines = list(self._lines)
        lines.pop(idx)
        self._publish(lines)
        self._schedule(self.change_delay)

    def set_quantity(self, line_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_line(line_id)
            return
        self._replace(line_id, quantity=quantity)
        self._schedule(self.change_delay)

    def set_manual_price(self, line_id: str, price: Decimal) -> None:
        self._replace(line_id, custom_price=price, manual_price_change=True)
        self._reschedule_if_in_flight()

    def set_manual_discount(self, line_id: str, amount: Decimal) -> None:
        self._replace(line_id, item_discount=amount, manual_price_change=True)
        self._reschedule_if_in_flight()

    def set_display_name(self, line_id: str, text: str | None) -> None:
        self._replace(line_id, display_name=text or None)
        self._reschedule_if_in_flight()

    def set_bill_discount(self, amount: Decimal) -> None:
        if amount < 0:
            raise ValueError("Bill discount must be non-negative")
        self._bill_discount = amount

    def clear(self) -> None:
        self._cancel_timer()
        self._dirty = False
        self._publish([])
        self._bill_discount = ZERO
        self._recorded_uses.clear()

    def load_lines(self, lines: list[CartLine]) -> None:
        """Bulk replace, e.g. when resuming the edit of a held sale."""
        self._publish(list(lines))
        self._schedule(self.add_delay)

    # ── Debounce ────────────────────────────────────────────────────────

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self, delay: float) -> None:
        """Restart the single debounce timer; outside an event loop just mark dirty."""
        self._dirty = True
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.call_later(delay, self._on_timer)

    def _reschedule_if_in_flight(self) -> None:
        # An in-flight recompute started before this edit will be discarded
        if self._task is not None and not self._task.done() and self._timer is None:
            self._schedule(self.change_delay)

    def _on_timer(self) -> None:
        self._timer = None
        self._task = asyncio.get_running_loop().create_task(self._recompute_cycle())

    # ── Recomputation ───────────────────────────────────────────────────

    async def _recompute_cycle(self) -> None:
        async with self._lock:
            if not self._dirty:
                return
            self._dirty = False
            version = self._version
            lines, uses = await self._recompute(self.lines)
            if self._version != version:
                logger.debug("Cart changed during recompute; discarding stale result")
                self._dirty = True
                if self._timer is None:
                    self._schedule(self.change_delay)
                return
            self._lines = lines
            self._version += 1
            self._record_bogo_uses(uses)

    async def _recompute(self, before: list[CartLine]) -> tuple[list[CartLine], dict[str, int]]:
        self._follow_catalog()
        catalog = self.catalog.get()
        try:
            outcome = await recompute_offers(
                before, catalog, self._resolve, self._used_since_load(catalog)
            )
        except Exception as exc:
            logger.warning("Promotion recompute failed; keeping cart unchanged: %s", exc)
            return before, {}
        return outcome.lines, outcome.bogo_uses

    def _follow_catalog(self) -> None:
        # A reloaded catalog carries fresh current_uses that already include our tally
        if self.catalog.generation != self._catalog_generation:
            self._catalog_generation = self.catalog.generation
            self._tally.clear()
            self._remote_counts.clear()

    def _used_since_load(self, catalog: PromotionCatalog) -> dict[str, int]:
        """Uses of each capped offer taken outside this sale since the catalog was read.

        The counter is the larger of the loaded ``current_uses`` plus what this
        terminal has recorded since, and the last count the remote reported.
        Can go negative when a reload already counted this sale's own uses,
        which gives them back to the cart.
        """
        used: dict[str, int] = {}
        for offer in catalog.single_bogos:
            if offer.max_total_uses is None:
                continue
            counter = max(
                offer.current_uses + self._tally.get(offer.id, 0),
                self._remote_counts.get(offer.id, 0),
            )
            used[offer.id] = counter - offer.current_uses - self._recorded_uses.get(offer.id, 0)
        return used

    def _record_bogo_uses(self, uses: dict[str, int]) -> None:
        """Send only the increase over what this sale has already recorded."""
        for offer_id, times in uses.items():
            delta = times - self._recorded_uses.get(offer_id, 0)
            if delta <= 0:
                continue
            self._recorded_uses[offer_id] = times
            self._tally[offer_id] = self._tally.get(offer_id, 0) + delta
            if self._record_usage is None:
                continue
            task = asyncio.get_running_loop().create_task(
                self._record_usage_quietly(offer_id, delta)
            )
            self._usage_tasks.add(task)
            task.add_done_callback(self._usage_tasks.discard)

    async def _record_usage_quietly(self, offer_id: str, delta: int) -> None:
        try:
            count = await self._record_usage(offer_id, delta)  # type: ignore[misc]
        except Exception as exc:
            logger.warning("Could not record usage of offer %s: %s", offer_id, exc)
            return
        if isinstance(count, int):
            self._remote_counts[offer_id] = max(count, self._remote_counts.get(offer_id, 0))

    async def recompute_now(self) -> list[CartLine]:
        self._cancel_timer()
        self._dirty = True
        await self._recompute_cycle()
        return self.lines

    async def flush(self) -> list[CartLine]:
        """Settle any pending or in-flight recomputation before the cart is read for checkout."""
        self._cancel_timer()
        if self._task is not None and not self._task.done():
            await self._task
        # A stale in-flight result can leave the cart dirty again; loop until settled
        while self._dirty:
            self._cancel_timer()
            await self._recompute_cycle()
        self._cancel_timer()
        return self.lines
