"""Local durability queue for settled sales.

A sale is final for the cashier as soon as :meth:`OfflineQueue.enqueue`
returns. Rows are never deleted here; the sync daemon flips ``synced`` once
the remote store has confirmed the write.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session, sessionmaker

from posengine.app.core.database import ensure_schema
from posengine.app.models.pending_transaction import PendingTransaction
from posengine.app.schemas.checkout import PendingTransactionCreate

logger = logging.getLogger(__name__)


def to_create(row: PendingTransaction) -> PendingTransactionCreate:
    return PendingTransactionCreate(
        id=row.id,
        store_id=row.store_id,
        cashier_id=row.cashier_id,
        customer_id=row.customer_id,
        order_id=row.order_id,
        items=list(row.items),
        subtotal=row.subtotal,
        discount=row.discount,
        tax=row.tax,
        total=row.total,
        payment_method=row.payment_method,
        payments=list(row.payments or []),
        notes=row.notes,
        timestamp=row.timestamp,
    )


class OfflineQueue:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        db = self._session_factory()
        ensure_schema(db.get_bind())
        return db

    def enqueue(self, record: PendingTransactionCreate) -> PendingTransaction:
        """Store *record* unsynced. Re-enqueueing a known id returns the stored row."""
        db = self._session()
        try:
            existing = db.get(PendingTransaction, record.id)
            if existing is not None:
                logger.info("Transaction %s already queued", record.id)
                db.expunge(existing)
                return existing

            data = record.model_dump(mode="json")
            row = PendingTransaction(
                id=record.id,
                store_id=record.store_id,
                cashier_id=record.cashier_id,
                customer_id=record.customer_id,
                order_id=record.order_id,
                items=data["items"],
                subtotal=record.subtotal,
                discount=record.discount,
                tax=record.tax,
                total=record.total,
                payment_method=record.payment_method,
                payments=data["payments"],
                notes=record.notes,
                timestamp=record.timestamp,
                synced=False,
                sync_attempts=0,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            db.expunge(row)
            logger.info("Queued transaction %s for sync", record.id)
            return row
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_unsynced(self) -> list[PendingTransaction]:
        db = self._session()
        try:
            rows = (
                db.query(PendingTransaction)
                .filter(PendingTransaction.synced.is_(False))
                .order_by(PendingTransaction.timestamp.asc())
                .all()
            )
            db.expunge_all()
            return rows
        finally:
            db.close()

    def get(self, transaction_id: str) -> PendingTransaction | None:
        db = self._session()
        try:
            row = db.get(PendingTransaction, transaction_id)
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def count_unsynced(self) -> int:
        db = self._session()
        try:
            return (
                db.query(PendingTransaction)
                .filter(PendingTransaction.synced.is_(False))
                .count()
            )
        finally:
            db.close()

    def mark_synced(self, transaction_id: str) -> None:
        db = self._session()
        try:
            row = db.get(PendingTransaction, transaction_id)
            if row is None:
                raise ValueError(f"Pending transaction {transaction_id} not found")
            row.synced = True
            row.sync_error = None
            row.last_sync_attempt = datetime.now(timezone.utc)
            db.commit()
        finally:
            db.close()

    def mark_failed(self, transaction_id: str, error: str, attempt_count: int) -> None:
        db = self._session()
        try:
            row = db.get(PendingTransaction, transaction_id)
            if row is None:
                raise ValueError(f"Pending transaction {transaction_id} not found")
            row.sync_error = error
            row.sync_attempts = attempt_count
            row.last_sync_attempt = datetime.now(timezone.utc)
            db.commit()
        finally:
            db.close()
