"""
Test Suite Configuration
"""
import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any, AsyncGenerator, Callable, Sequence

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.analytics import AnalyticsEngine
from src.config import Settings
from src.database.connection import SqlColumnStore
from src.database.models import Base, events_table
from src.ingestion.writer import EventRecord, write_events

# Fixed evaluation instant for deterministic time ranges
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


class RecordingStore:
    """Column store stub that tracks concurrency and can fail on demand"""
    
    def __init__(self, fail_on_call: int = 0, delay: float = 0.01):
        self.table = events_table
        self.fail_on_call = fail_on_call
        self.delay = delay
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
    
    async def fetch_all(self, statement) -> Sequence[Any]:
        self.calls += 1
        call = self.calls
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if call == self.fail_on_call:
                raise ConnectionError("store unavailable")
            return []
        finally:
            self.in_flight -= 1


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
async def store_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite event store (separate connections can run concurrently)"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'events.db'}",
        echo=False,
    )
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest.fixture
def column_store(store_engine) -> SqlColumnStore:
    return SqlColumnStore(store_engine, events_table)


@pytest.fixture
def analytics_engine(column_store) -> AnalyticsEngine:
    return AnalyticsEngine(column_store)


@pytest.fixture
def make_event() -> Callable[..., EventRecord]:
    """Factory for pageview records on site1, one hour before NOW by default"""
    def _make(**overrides) -> EventRecord:
        values = {
            "site_id": "site1",
            "timestamp": NOW - timedelta(hours=1),
            "host": "https://example.com",
            "path": "/",
        }
        values.update(overrides)
        return EventRecord(**values)
    return _make


@pytest.fixture
def seed(store_engine) -> Callable:
    """Insert records into the test store"""
    async def _seed(*records: EventRecord) -> int:
        return await write_events(store_engine, records, events_table)
    return _seed


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )
