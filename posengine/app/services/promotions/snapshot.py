from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from posengine.app.core.database import ensure_schema
from posengine.app.models.promotion_snapshot import PromotionSnapshot


class PromotionSnapshotStore:
    """Local copy of promotion rows, used when the remote catalog is unreachable."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        db = self._session_factory()
        ensure_schema(db.get_bind())
        return db

    def save(self, kind: str, payload: list[dict[str, Any]]) -> None:
        db = self._session()
        try:
            row = db.get(PromotionSnapshot, kind)
            now = datetime.now(timezone.utc)
            if row is None:
                db.add(PromotionSnapshot(kind=kind, payload=payload, saved_at=now))
            else:
                row.payload = payload
                row.saved_at = now
            db.commit()
        finally:
            db.close()

    def load(self, kind: str) -> list[dict[str, Any]] | None:
        db = self._session()
        try:
            row = db.get(PromotionSnapshot, kind)
            return list(row.payload) if row is not None else None
        finally:
            db.close()
