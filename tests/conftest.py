"""
Shared fixtures.

Every test gets its own SQLite database file so concurrent sessions behave
like separate connections to one store.
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "dropmarket_app.db")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ.pop("REDIS_URL", None)

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dropmarket import models  # noqa: F401
from dropmarket.core.events import get_change_feed
from dropmarket.core.retry import RetryPolicy
from dropmarket.database import Base, build_engine
from dropmarket.services.cache_service import reset_cache
from dropmarket.services.catalog_service import reset_catalog_cache_invalidation

from tests.factories import FakePaymentGateway


@pytest.fixture
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'dropmarket.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_retries=2, backoff_seconds=0)


@pytest.fixture(autouse=True)
def reset_singletons():
    yield
    get_change_feed().clear()
    reset_catalog_cache_invalidation()
    reset_cache()
