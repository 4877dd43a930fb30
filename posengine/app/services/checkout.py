"""Turns the active cart into a settled sale.

Success never depends on the network: when the remote write cannot happen the
sale goes to the local durability queue and is reported as pending.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from posengine.app.schemas.cart import CartLine
from posengine.app.schemas.checkout import (
    PaymentEntry,
    PaymentMethodEnum,
    PendingTransactionCreate,
    SettledTransaction,
)
from posengine.app.services.cart_engine import CartEngine
from posengine.app.services.connectivity import ConnectivityMonitor
from posengine.app.services.offline_queue import OfflineQueue
from posengine.app.services.remote.client import RemoteStoreClient
from posengine.app.services.settlement import (
    SettlementTotals,
    compute_totals,
    line_total,
    round_money,
)
from posengine.app.services.tax import TaxFunction, no_tax

logger = logging.getLogger(__name__)

SPLIT_PAYMENT = "SPLIT"


def line_to_item(line: CartLine) -> dict[str, Any]:
    item = line.model_dump(mode="json")
    item["line_total"] = str(round_money(line_total(line)))
    return item


def payment_method_label(payments: list[PaymentEntry]) -> str:
    methods = {p.method.value for p in payments}
    if not methods:
        return PaymentMethodEnum.CASH.value
    if len(methods) == 1:
        return methods.pop()
    return SPLIT_PAYMENT


class CheckoutService:
    def __init__(
        self,
        engine: CartEngine,
        queue: OfflineQueue,
        client: RemoteStoreClient,
        monitor: ConnectivityMonitor | None = None,
        tax_function: TaxFunction = no_tax,
    ) -> None:
        self.engine = engine
        self.queue = queue
        self.client = client
        self.monitor = monitor
        self.tax_function = tax_function
        self.last_error: str | None = None

    def totals(self) -> SettlementTotals:
        return compute_totals(self.engine.lines, self.engine.bill_discount, self.tax_function)

    def _validate(self, store_id: str | None, cashier_id: str | None) -> str | None:
        if self.engine.is_empty():
            return "Cart is empty"
        if not store_id:
            return "No store selected"
        if not cashier_id:
            return "Not authenticated"
        return None

    async def settle(
        self,
        payments: list[PaymentEntry],
        store_id: str | None,
        cashier_id: str | None,
        customer_id: str | None = None,
        notes: str | None = None,
        editing_id: str | None = None,
        editing_kind: Literal["transaction", "order"] | None = None,
    ) -> SettledTransaction | None:
        """Settle the cart. Returns None (message in ``last_error``) when validation fails."""
        self.last_error = self._validate(store_id, cashier_id)
        if self.last_error is not None:
            logger.warning("Checkout rejected: %s", self.last_error)
            return None

        # Promotions must be settled before totals are read
        lines = await self.engine.flush()
        totals = compute_totals(lines, self.engine.bill_discount, self.tax_function).rounded()

        if not payments and totals.total > 0:
            payments = [PaymentEntry(method=PaymentMethodEnum.CASH, amount=totals.total)]

        order_id: str | None = None
        if editing_id and editing_kind == "order":
            transaction_id = str(uuid.uuid4())
            order_id = editing_id
        else:
            transaction_id = editing_id or str(uuid.uuid4())

        record = PendingTransactionCreate(
            id=transaction_id,
            store_id=store_id,
            cashier_id=cashier_id,
            customer_id=customer_id,
            order_id=order_id,
            items=[line_to_item(line) for line in lines],
            subtotal=totals.subtotal,
            discount=totals.bill_discount,
            tax=totals.tax,
            total=totals.total,
            payment_method=payment_method_label(payments),
            payments=[p.model_dump(mode="json") for p in payments],
            notes=notes,
            timestamp=datetime.now(timezone.utc),
        )

        sync_status: Literal["synced", "pending"] = "synced"
        sync_error: str | None = None
        if self.monitor is not None and not self.monitor.is_online:
            sync_status, sync_error = "pending", "offline"
        else:
            try:
                await self.client.upsert_transaction(record)
                if order_id:
                    await self.client.convert_order(order_id, record.id, record.payment_method)
            except Exception as exc:
                logger.warning("Remote write of transaction %s failed: %s", record.id, exc)
                sync_status, sync_error = "pending", str(exc)

        if sync_status == "pending":
            self.queue.enqueue(record)
            logger.info("Transaction %s saved offline", record.id)
        else:
            logger.info("Transaction %s settled", record.id)

        self.engine.clear()
        return SettledTransaction(
            id=record.id,
            store_id=record.store_id,
            cashier_id=record.cashier_id,
            customer_id=record.customer_id,
            order_id=record.order_id,
            items=record.items,
            subtotal=str(totals.subtotal),
            discount=str(totals.bill_discount),
            tax=str(totals.tax),
            tax_name=totals.tax_name,
            total=str(totals.total),
            payment_method=record.payment_method,
            payments=record.payments,
            timestamp=record.timestamp.isoformat(),
            sync_status=sync_status,
            sync_error=sync_error,
        )
