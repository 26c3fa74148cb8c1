"""Shared test fixtures and configuration."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from dataforseo_mcp.cache import CacheMetrics, CacheService, RecordStore, TTLPolicy


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2025-03-15 12:00 UTC."""
    return FakeClock(datetime(2025, 3, 15, 12, 0, 0))


@pytest.fixture
def database_url(tmp_path):
    """SQLite file database in the test's temp directory."""
    return f"sqlite+aiosqlite:///{tmp_path / 'seo_cache.db'}"


@pytest_asyncio.fixture
async def record_store(database_url, clock):
    """Connected RecordStore with the schema created."""
    store = RecordStore({"database_url": database_url}, clock=clock)
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def cache_metrics():
    return CacheMetrics()


@pytest_asyncio.fixture
async def cache_service(record_store, cache_metrics):
    """CacheService over the temp database with default TTLs."""
    return CacheService(record_store, TTLPolicy(), metrics=cache_metrics)
