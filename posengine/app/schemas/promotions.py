from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from posengine.app.schemas.cart import ProductRef


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class ActiveWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: datetime
    end_date: datetime

    def contains(self, now: datetime) -> bool:
        now = _aware(now)
        return _aware(self.start_date) <= now <= _aware(self.end_date)

    def has_ended(self, now: datetime) -> bool:
        return _aware(now) > _aware(self.end_date)


# ─── Combo bundles ───────────────────────────────────────────────────────────


class ComboConstituent(BaseModel):
    model_config = ConfigDict(frozen=True)

    ref: ProductRef
    quantity: int = 1

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Constituent quantity must be greater than zero")
        return v


class ComboDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["combo"] = "combo"
    id: str
    name: str
    combo_price: Decimal
    constituents: tuple[ComboConstituent, ...]
    display_order: int = 0

    @field_validator("constituents")
    @classmethod
    def not_empty(cls, v: tuple[ComboConstituent, ...]) -> tuple[ComboConstituent, ...]:
        if not v:
            raise ValueError("A combo needs at least one constituent")
        return v

    @property
    def bundle_size(self) -> int:
        return sum(c.quantity for c in self.constituents)


# ─── BOGO offers ─────────────────────────────────────────────────────────────


class SingleBogoOffer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["single_bogo"] = "single_bogo"
    id: str
    name: str
    buy: ProductRef
    buy_quantity: int = 1
    get: ProductRef
    get_quantity: int = 1
    discount_percent: Decimal = Decimal("100")
    max_uses_per_transaction: int | None = None
    max_total_uses: int | None = None
    current_uses: int = 0
    window: ActiveWindow

    @field_validator("buy_quantity", "get_quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Offer quantities must be greater than zero")
        return v

    @field_validator("discount_percent")
    @classmethod
    def percent_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("discount_percent must be between 0 and 100")
        return v

    def remaining_global_uses(self, used_since_load: int = 0) -> int | None:
        """Uses left under the global cap.

        *used_since_load* counts uses taken from the pool after ``current_uses``
        was read, by other sales on this terminal or by other terminals.
        """
        if self.max_total_uses is None:
            return None
        return max(0, self.max_total_uses - self.current_uses - used_since_load)


class MultiProductBogoOffer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["multi_bogo"] = "multi_bogo"
    id: str
    name: str
    items: frozenset[ProductRef]
    discount_percent: Decimal = Decimal("50")
    window: ActiveWindow


Promotion = Annotated[
    Union[ComboDefinition, SingleBogoOffer, MultiProductBogoOffer],
    Field(discriminator="kind"),
]


class PromotionCatalog(BaseModel):
    """Immutable view over every promotion active for the current sale session."""

    model_config = ConfigDict(frozen=True)

    promotions: tuple[Promotion, ...] = ()
    loaded_at: datetime | None = None

    @property
    def combos(self) -> list[ComboDefinition]:
        return sorted(
            (p for p in self.promotions if isinstance(p, ComboDefinition)),
            key=lambda c: c.display_order,
        )

    @property
    def single_bogos(self) -> list[SingleBogoOffer]:
        return [p for p in self.promotions if isinstance(p, SingleBogoOffer)]

    @property
    def multi_bogos(self) -> list[MultiProductBogoOffer]:
        return [p for p in self.promotions if isinstance(p, MultiProductBogoOffer)]

    def without_ended(self, now: datetime) -> "PromotionCatalog":
        kept: list[Promotion] = []
        for promo in self.promotions:
            match promo:
                case ComboDefinition():
                    kept.append(promo)
                case SingleBogoOffer() | MultiProductBogoOffer():
                    if not promo.window.has_ended(now):
                        kept.append(promo)
        return PromotionCatalog(promotions=tuple(kept), loaded_at=self.loaded_at)


class PromotionCatalogOut(BaseModel):
    loaded_at: datetime | None
    combos: list[ComboDefinition]
    single_bogos: list[SingleBogoOffer]
    multi_bogos: list[MultiProductBogoOffer]
