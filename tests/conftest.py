"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from rehydration.db.session import init_db, session_factory_for
from rehydration.models.dataset import DatasetVersion, User
from rehydration.stores.idempotency import IdempotencyStore
from rehydration.stores.tracking import TrackingStore
from rehydration.utils.paths import DestinationLayout
from tests.fakes import FakeDiscover, FakeNotifier, FakeObjectStore, FakeRunner

IDEMPOTENCY_TABLE = "test_idempotency"
TRACKING_TABLE = "test_tracking"


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so that concurrent sessions see each other's writes."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rehydration.db'}", echo=False)
    yield engine
    await engine.dispose()


@pytest.fixture
async def idempotency_store(db_engine) -> IdempotencyStore:
    store = IdempotencyStore(session_factory_for(db_engine), table_name=IDEMPOTENCY_TABLE)
    await init_db([store.table], engine=db_engine)
    return store


@pytest.fixture
async def tracking_store(db_engine) -> TrackingStore:
    store = TrackingStore(session_factory_for(db_engine), table_name=TRACKING_TABLE)
    await init_db([store.table], engine=db_engine)
    return store


@pytest.fixture
def dataset() -> DatasetVersion:
    return DatasetVersion(dataset_id=5065, version_id=2)


@pytest.fixture
def user() -> User:
    return User(name="Ada Lovelace", email="ada@example.com")


@pytest.fixture
def layout() -> DestinationLayout:
    return DestinationLayout(bucket="rehydration-bucket")


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def discover() -> FakeDiscover:
    return FakeDiscover()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()
