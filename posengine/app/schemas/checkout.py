from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, field_validator


class PaymentMethodEnum(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"


class PaymentEntry(BaseModel):
    method: PaymentMethodEnum
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Payment amount must be greater than zero")
        return v


class SettleRequest(BaseModel):
    payments: list[PaymentEntry] = []
    store_id: str | None = None
    customer_id: str | None = None
    notes: str | None = None
    editing_id: str | None = None
    editing_kind: Literal["transaction", "order"] | None = None


class PendingTransactionCreate(BaseModel):
    """Persisted shape of a settled sale, shared by the remote write and the local queue."""

    id: str
    store_id: str
    cashier_id: str
    customer_id: str | None = None
    order_id: str | None = None
    items: list[dict[str, Any]]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    payment_method: str
    payments: list[dict[str, Any]] = []
    notes: str | None = None
    timestamp: datetime


class SettledTransaction(BaseModel):
    id: str
    store_id: str
    cashier_id: str
    customer_id: str | None
    order_id: str | None
    items: list[dict[str, Any]]
    subtotal: str
    discount: str
    tax: str
    tax_name: str
    total: str
    payment_method: str
    payments: list[dict[str, Any]]
    timestamp: str
    sync_status: Literal["synced", "pending"]
    sync_error: str | None = None


class SyncResult(BaseModel):
    synced: int = 0
    failed: int = 0
    skipped: bool = False


class SyncStatusOut(BaseModel):
    online: bool
    syncing: bool
    unsynced_count: int
