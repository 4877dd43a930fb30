from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from posengine.app.core.database import Base


class PendingTransaction(Base):
    """A completed sale awaiting confirmation by the remote system of record."""

    __tablename__ = "pending_transactions"

    # Client-generated, stable across every retry
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    cashier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2, asdecimal=True), nullable=False
    )
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2, asdecimal=True), nullable=False, default=Decimal("0")
    )
    tax: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2, asdecimal=True), nullable=False, default=Decimal("0")
    )
    total: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2, asdecimal=True), nullable=False
    )
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    payments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sync_attempt: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_pending_transactions_synced", "synced"),
        Index("ix_pending_transactions_timestamp", "timestamp"),
    )
