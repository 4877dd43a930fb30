from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from posengine.app.core.database import Base


class PromotionSnapshot(Base):
    """Last successfully fetched copy of a promotion catalog, one row per kind."""

    __tablename__ = "promotion_snapshots"

    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    payload: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
