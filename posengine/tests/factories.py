"""Builders and an in-memory remote store shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx

from posengine.app.schemas.cart import CartLine, ProductRef
from posengine.app.schemas.checkout import PendingTransactionCreate
from posengine.app.schemas.promotions import (
    ActiveWindow,
    ComboConstituent,
    ComboDefinition,
    MultiProductBogoOffer,
    SingleBogoOffer,
)
from posengine.app.services.remote.client import RemoteStoreError, ResolvedProduct

STORE_ID = "store-1"
CASHIER_ID = "cashier-1"


def open_window(days: int = 1) -> ActiveWindow:
    now = datetime.now(timezone.utc)
    return ActiveWindow(start_date=now - timedelta(days=days), end_date=now + timedelta(days=days))


def ended_window() -> ActiveWindow:
    now = datetime.now(timezone.utc)
    return ActiveWindow(start_date=now - timedelta(days=3), end_date=now - timedelta(days=1))


def make_line(
    line_id: str,
    price: str = "1.00",
    quantity: int = 1,
    product_id: str | None = None,
    variant_id: str | None = None,
    name: str | None = None,
) -> CartLine:
    return CartLine(
        id=line_id,
        product_id=product_id or line_id,
        variant_id=variant_id,
        name=name or line_id.upper(),
        price=Decimal(price),
        quantity=quantity,
    )


def make_combo(
    combo_id: str,
    price: str,
    *constituents: tuple[str, int],
    display_order: int = 0,
) -> ComboDefinition:
    return ComboDefinition(
        id=combo_id,
        name=f"Combo {combo_id}",
        combo_price=Decimal(price),
        display_order=display_order,
        constituents=tuple(
            ComboConstituent(ref=ProductRef(product_id=pid), quantity=qty)
            for pid, qty in constituents
        ),
    )


def make_single_bogo(
    offer_id: str,
    buy: str,
    get: str,
    buy_quantity: int = 1,
    get_quantity: int = 1,
    discount_percent: str = "100",
    max_uses_per_transaction: int | None = None,
    max_total_uses: int | None = None,
    current_uses: int = 0,
) -> SingleBogoOffer:
    return SingleBogoOffer(
        id=offer_id,
        name=f"Offer {offer_id}",
        buy=ProductRef(product_id=buy),
        buy_quantity=buy_quantity,
        get=ProductRef(product_id=get),
        get_quantity=get_quantity,
        discount_percent=Decimal(discount_percent),
        max_uses_per_transaction=max_uses_per_transaction,
        max_total_uses=max_total_uses,
        current_uses=current_uses,
        window=open_window(),
    )


def make_multi_bogo(offer_id: str, *product_ids: str, discount_percent: str = "50") -> MultiProductBogoOffer:
    return MultiProductBogoOffer(
        id=offer_id,
        name=f"Multi {offer_id}",
        items=frozenset(ProductRef(product_id=pid) for pid in product_ids),
        discount_percent=Decimal(discount_percent),
        window=open_window(),
    )


class FakeRemoteStore:
    """Stands in for :class:`RemoteStoreClient` with dict-backed tables."""

    def __init__(self) -> None:
        self.combos: list[ComboDefinition] = []
        self.single_bogos: list[SingleBogoOffer] = []
        self.multi_bogos: list[MultiProductBogoOffer] = []
        self.products: dict[str, ResolvedProduct] = {}
        self.transactions: dict[str, PendingTransactionCreate] = {}
        self.converted_orders: list[tuple[str, str, str]] = []
        self.usage_increments: list[tuple[str, int]] = []
        self.upsert_calls = 0
        self.product_lookups = 0
        self.online = True
        self.fail_combos = False
        self.fail_bogos = False
        self.fail_writes = False

    def add_product(self, product_id: str, price: str, name: str | None = None) -> None:
        self.products[product_id] = ResolvedProduct(
            product_id=product_id,
            variant_id=None,
            name=name or product_id.upper(),
            price=Decimal(price),
        )

    async def fetch_combo_offers(self) -> list[ComboDefinition]:
        if self.fail_combos:
            raise httpx.ConnectError("remote unreachable")
        return list(self.combos)

    async def fetch_single_bogo_offers(self) -> list[SingleBogoOffer]:
        if self.fail_bogos:
            raise httpx.ConnectError("remote unreachable")
        return list(self.single_bogos)

    async def fetch_multi_bogo_offers(self) -> list[MultiProductBogoOffer]:
        if self.fail_bogos:
            raise httpx.ConnectError("remote unreachable")
        return list(self.multi_bogos)

    async def fetch_product(self, ref: ProductRef) -> ResolvedProduct:
        self.product_lookups += 1
        key = ref.variant_id or ref.product_id
        if key not in self.products:
            raise RemoteStoreError(404, "NOT_FOUND", f"Product {key} not found")
        return self.products[key]

    async def increment_bogo_usage(self, offer_id: str, by: int = 1, max_retries: int = 3) -> int:
        self.usage_increments.append((offer_id, by))
        return sum(n for oid, n in self.usage_increments if oid == offer_id)

    async def upsert_transaction(
        self, record: PendingTransactionCreate, *, from_offline: bool = False
    ) -> None:
        self.upsert_calls += 1
        if self.fail_writes:
            raise httpx.ConnectError("remote unreachable")
        self.transactions[record.id] = record

    async def convert_order(self, order_id: str, transaction_id: str, payment_method: str) -> None:
        if self.fail_writes:
            raise httpx.ConnectError("remote unreachable")
        self.converted_orders.append((order_id, transaction_id, payment_method))

    async def ping(self) -> bool:
        return self.online


def make_record(record_id: str = "tx-1", minutes_ago: int = 0) -> PendingTransactionCreate:
    return PendingTransactionCreate(
        id=record_id,
        store_id=STORE_ID,
        cashier_id=CASHIER_ID,
        items=[{"id": "a", "name": "A", "quantity": 2, "price": "1.50"}],
        subtotal=Decimal("3.00"),
        discount=Decimal("0.00"),
        tax=Decimal("0.00"),
        total=Decimal("3.00"),
        payment_method="CASH",
        payments=[{"method": "CASH", "amount": "3.00"}],
        timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
