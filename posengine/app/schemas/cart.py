from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class LineKind(str, Enum):
    PLAIN = "PLAIN"
    COMBO = "COMBO"
    BOGO = "BOGO"


class ProductRef(BaseModel):
    """Stable identity of a sellable item: a base product, optionally narrowed to a variant."""

    model_config = ConfigDict(frozen=True)

    product_id: str | None = None
    variant_id: str | None = None

    @model_validator(mode="after")
    def at_least_one_id(self) -> "ProductRef":
        if not self.product_id and not self.variant_id:
            raise ValueError("A product reference needs a product_id or a variant_id")
        return self


class ComboItemSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_id: str
    product_id: str
    variant_id: str | None = None
    name: str
    quantity: int
    price: Decimal


class CartLine(BaseModel):
    """One row of the active sale.

    Lines are treated as values: the engine never mutates a line in place,
    it replaces it with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    variant_id: str | None = None
    name: str
    display_name: str | None = None
    price: Decimal
    original_price: Decimal | None = None
    quantity: int = 1
    item_discount: Decimal | None = None
    custom_price: Decimal | None = None
    manual_price_change: bool = False
    kind: LineKind = LineKind.PLAIN
    combo_id: str | None = None
    combo_items: tuple[ComboItemSnapshot, ...] = ()
    is_bogo: bool = False
    bogo_offer_id: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1")
        return v

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must be non-negative")
        return v

    @model_validator(mode="after")
    def kind_consistent(self) -> "CartLine":
        if self.kind == LineKind.COMBO and not self.combo_id:
            raise ValueError("Combo lines require combo_id")
        if self.kind == LineKind.BOGO and not self.bogo_offer_id:
            raise ValueError("Generated BOGO lines require bogo_offer_id")
        if self.kind != LineKind.COMBO and self.combo_items:
            raise ValueError("Only combo lines carry combo_items")
        return self

    @property
    def is_combo(self) -> bool:
        return self.kind == LineKind.COMBO

    @property
    def is_regular(self) -> bool:
        return self.kind == LineKind.PLAIN

    @property
    def effective_price(self) -> Decimal:
        return self.custom_price if self.custom_price is not None else self.price

    def matches(self, ref: ProductRef) -> bool:
        if ref.variant_id:
            return self.variant_id == ref.variant_id
        return self.product_id == ref.product_id


# ─── Request bodies ──────────────────────────────────────────────────────────


class CartLineIn(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str
    price: Decimal
    quantity: int = 1

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    def to_line(self) -> CartLine:
        return CartLine(
            id=self.variant_id or self.product_id,
            product_id=self.product_id,
            variant_id=self.variant_id,
            name=self.name,
            price=self.price,
            quantity=self.quantity,
        )


class QuantityUpdate(BaseModel):
    quantity: int


class PriceUpdate(BaseModel):
    price: Decimal

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must be non-negative")
        return v


class DiscountUpdate(BaseModel):
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def amount_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Discount must be non-negative")
        return v


class DisplayNameUpdate(BaseModel):
    display_name: str | None = None


# ─── Response ────────────────────────────────────────────────────────────────


class CartTotalsOut(BaseModel):
    subtotal: str
    bill_discount: str
    net: str
    tax: str
    tax_name: str
    total: str


class CartOut(BaseModel):
    lines: list[CartLine]
    totals: CartTotalsOut
    recompute_pending: bool
