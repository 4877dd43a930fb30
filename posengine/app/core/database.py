from __future__ import annotations

import threading

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from posengine.app.core.config import settings


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine(settings.LOCAL_DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


_initialized: set[str] = set()
_init_lock = threading.Lock()


def ensure_schema(bind: Engine) -> None:
    """Create local tables on first use of *bind*.

    The local store may never have been initialised (fresh terminal, wiped
    profile), so every writer calls this before touching a table.
    """
    key = str(bind.url) + f"#{id(bind)}"
    if key in _initialized:
        return
    with _init_lock:
        if key in _initialized:
            return
        # Register mapped classes before create_all
        from posengine.app.models import pending_transaction, promotion_snapshot  # noqa: F401

        Base.metadata.create_all(bind=bind)
        _initialized.add(key)

