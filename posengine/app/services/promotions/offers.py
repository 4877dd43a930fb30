"""Promotion recomputation over a cart snapshot.

Stages run in a fixed order, each consuming the previous stage's output:

1. snapshot manual per-line overrides
2. single-product BOGO (appends generated lines)
3. multi-product BOGO (re-prices eligible regular lines, reversibly)
4. combo bundling (replaces regular units with combo lines)
5. restore manual overrides onto surviving regular lines

Nothing here touches engine state; the caller decides whether to publish the
result.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from posengine.app.schemas.cart import CartLine, LineKind, ProductRef
from posengine.app.schemas.promotions import (
    MultiProductBogoOffer,
    PromotionCatalog,
    SingleBogoOffer,
)
from posengine.app.services.promotions.combos import apply_combos
from posengine.app.services.remote.client import ResolvedProduct

HUNDRED = Decimal("100")

ProductResolver = Callable[[ProductRef], Awaitable[ResolvedProduct]]


@dataclass(frozen=True)
class ManualOverride:
    item_discount: Decimal | None
    custom_price: Decimal | None
    manual_price_change: bool


@dataclass
class RecomputeResult:
    lines: list[CartLine]
    # offer id -> times the offer applied in this pass
    bogo_uses: dict[str, int] = field(default_factory=dict)


def snapshot_overrides(lines: list[CartLine]) -> dict[str, ManualOverride]:
    return {
        line.id: ManualOverride(
            item_discount=line.item_discount,
            custom_price=line.custom_price,
            manual_price_change=line.manual_price_change,
        )
        for line in lines
        if line.item_discount is not None or line.custom_price is not None
    }


def restore_overrides(
    lines: list[CartLine], overrides: dict[str, ManualOverride]
) -> list[CartLine]:
    restored: list[CartLine] = []
    for line in lines:
        override = overrides.get(line.id)
        if line.is_regular and override is not None:
            line = line.model_copy(
                update={
                    "item_discount": override.item_discount,
                    "custom_price": override.custom_price,
                    "manual_price_change": override.manual_price_change,
                }
            )
        restored.append(line)
    return restored


# ─── Single-product BOGO ─────────────────────────────────────────────────────


def times_applicable(
    offer: SingleBogoOffer, buy_quantity_in_cart: int, used_since_load: int = 0
) -> int:
    """How often *offer* fires, clamped by its per-transaction and global caps."""
    times = buy_quantity_in_cart // offer.buy_quantity
    if offer.max_uses_per_transaction is not None:
        times = min(times, offer.max_uses_per_transaction)
    remaining = offer.remaining_global_uses(used_since_load)
    if remaining is not None:
        times = min(times, remaining)
    return max(0, times)


def discounted_price(price: Decimal, discount_percent: Decimal) -> Decimal:
    return price * (1 - discount_percent / HUNDRED)


async def apply_single_bogos(
    regular: list[CartLine],
    offers: list[SingleBogoOffer],
    resolve: ProductResolver,
    used_since_load: Mapping[str, int] | None = None,
) -> tuple[list[CartLine], dict[str, int]]:
    """Return generated BOGO lines and per-offer use counts.

    *used_since_load* maps offer ids to uses taken from the global pool outside
    this cart since the catalog was read.

    Raises whatever *resolve* raises; the caller treats that as a failed cycle.
    """
    used_since_load = used_since_load or {}
    generated: list[CartLine] = []
    uses: dict[str, int] = {}
    for offer in offers:
        used = used_since_load.get(offer.id, 0)
        remaining = offer.remaining_global_uses(used)
        if remaining is not None and remaining <= 0:
            continue
        bought = sum(line.quantity for line in regular if line.matches(offer.buy))
        times = times_applicable(offer, bought, used)
        if times <= 0:
            continue

        product = await resolve(offer.get)
        price = discounted_price(product.price, offer.discount_percent)
        for n in range(1, times + 1):
            generated.append(
                CartLine(
                    id=f"bogo-{offer.id}-{n}",
                    product_id=product.product_id,
                    variant_id=product.variant_id,
                    name=f"{product.name} (BOGO)",
                    price=price,
                    original_price=product.price,
                    quantity=offer.get_quantity,
                    kind=LineKind.BOGO,
                    is_bogo=True,
                    bogo_offer_id=offer.id,
                )
            )
        uses[offer.id] = times
    return generated, uses


# ─── Multi-product BOGO ──────────────────────────────────────────────────────


def _matches_offer(line: CartLine, offer: MultiProductBogoOffer) -> bool:
    return any(line.matches(ref) for ref in offer.items)


def _discount(line: CartLine, offer: MultiProductBogoOffer) -> CartLine:
    original = line.original_price if line.original_price is not None else line.price
    return line.model_copy(
        update={
            "original_price": original,
            "price": discounted_price(original, offer.discount_percent),
            "is_bogo": True,
            "bogo_offer_id": offer.id,
        }
    )


def _undo_discount(line: CartLine) -> CartLine:
    return line.model_copy(
        update={
            "price": line.original_price,
            "original_price": None,
            "is_bogo": False,
            "bogo_offer_id": None,
        }
    )


def _is_multi_discounted(line: CartLine) -> bool:
    return line.is_regular and line.is_bogo and line.original_price is not None


def apply_multi_bogos(
    regular: list[CartLine], offers: list[MultiProductBogoOffer]
) -> list[CartLine]:
    lines = list(regular)
    for offer in offers:
        eligible = [i for i, line in enumerate(lines) if _matches_offer(line, offer)]
        combined = sum(lines[i].quantity for i in eligible)
        for i in eligible:
            line = lines[i]
            if combined > 1:
                lines[i] = _discount(line, offer)
            elif _is_multi_discounted(line) and line.bogo_offer_id == offer.id:
                lines[i] = _undo_discount(line)

    # Offers that left the catalog must not keep their discount on the cart
    live = {offer.id for offer in offers}
    return [
        _undo_discount(line)
        if _is_multi_discounted(line) and line.bogo_offer_id not in live
        else line
        for line in lines
    ]


# ─── Full pass ───────────────────────────────────────────────────────────────


async def recompute_offers(
    lines: list[CartLine],
    catalog: PromotionCatalog,
    resolve: ProductResolver,
    used_since_load: Mapping[str, int] | None = None,
) -> RecomputeResult:
    overrides = snapshot_overrides(lines)

    regular = [line for line in lines if line.is_regular]
    existing_combos = [line for line in lines if line.is_combo]
    # Previously generated BOGO lines are dropped and regenerated below

    bogo_lines, uses = await apply_single_bogos(
        regular, catalog.single_bogos, resolve, used_since_load
    )
    regular = apply_multi_bogos(regular, catalog.multi_bogos)
    regular, new_combos = apply_combos(regular, catalog.combos, existing_combos)
    regular = restore_overrides(regular, overrides)

    return RecomputeResult(
        lines=regular + bogo_lines + existing_combos + new_combos,
        bogo_uses=uses,
    )
