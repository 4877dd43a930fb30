"""Shared test fixtures.

Every test gets its own SQLite file under ``tmp_path`` and an in-memory
remote store, so nothing touches a real terminal database or the network.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from posengine.app.core.database import make_engine
from posengine.app.core.security import create_access_token
from posengine.app.main import create_app
from posengine.app.services.offline_queue import OfflineQueue
from posengine.app.services.promotions.catalog import PromotionCatalogCache
from posengine.app.services.promotions.snapshot import PromotionSnapshotStore
from posengine.app.services.runtime import PosServices
from posengine.tests.factories import CASHIER_ID, STORE_ID, FakeRemoteStore


@pytest.fixture()
def session_factory(tmp_path) -> Generator[sessionmaker[Session], None, None]:
    engine = make_engine(f"sqlite:///{tmp_path / 'pos_local.db'}")
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def queue(session_factory) -> OfflineQueue:
    return OfflineQueue(session_factory)


@pytest.fixture()
def catalog(remote, session_factory) -> PromotionCatalogCache:
    return PromotionCatalogCache(remote, snapshots=PromotionSnapshotStore(session_factory))


@pytest.fixture()
def services(remote, session_factory) -> PosServices:
    services = PosServices.build(
        session_factory=session_factory, client=remote, run_background=False
    )
    services.store_id = STORE_ID
    return services


@pytest.fixture()
def client(services) -> Generator[TestClient, None, None]:
    with TestClient(create_app(services)) as c:
        yield c


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    token = create_access_token(subject=CASHIER_ID)
    return {"Authorization": f"Bearer {token}"}
