"""
Event Store Connection Management

Async SQLAlchemy 2.0 engine for the event store, plus the SqlColumnStore
adapter through which the query engine reads it.
"""

import time
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import Table, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import Select

from src.config import get_settings
from src.database.models import Base, build_events_table

logger = structlog.get_logger(__name__)

# Global engine
_engine: Optional[AsyncEngine] = None


class SqlColumnStore:
    """
    Column store backed by an AsyncEngine.
    
    Each statement runs on its own pooled connection, so statements issued
    concurrently (e.g. the two halves of a stats request) never share one.
    """
    
    def __init__(self, engine: AsyncEngine, table: Optional[Table] = None):
        self.engine = engine
        self.table = table if table is not None else build_events_table()
    
    async def fetch_all(self, statement: Select) -> Sequence[Any]:
        async with self.engine.connect() as conn:
            result = await conn.execute(statement)
            return result.all()


async def init_database(url: Optional[str] = None, create_tables: bool = False) -> AsyncEngine:
    """
    Initialize the event store engine.
    
    Args:
        url: SQLAlchemy async URL (defaults to settings.database.async_url)
        create_tables: Create the event table if missing (development/testing)
    
    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine
    
    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine
    
    settings = get_settings()
    
    # asyncpg pools its own connections
    _engine = create_async_engine(
        url or settings.database.async_url,
        echo=settings.database.echo,
        pool_pre_ping=True,
        poolclass=NullPool,
    )
    
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                build_events_table(settings.database.table)
                await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Event store connection established",
            host=settings.database.host,
            table=settings.database.table,
        )
    except Exception as e:
        logger.error("Failed to connect to event store", error=str(e))
        await _engine.dispose()
        _engine = None
        raise
    
    return _engine


async def close_database() -> None:
    """Dispose of the engine and its connections."""
    global _engine
    
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Event store connection closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.
    
    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def get_column_store() -> SqlColumnStore:
    """Column store over the global engine and the configured event table."""
    settings = get_settings()
    return SqlColumnStore(get_engine(), build_events_table(settings.database.table))


async def check_database_health(engine: Optional[AsyncEngine] = None) -> dict:
    """
    Check event store health.
    
    Returns:
        dict: Health status with latency information
    """
    try:
        engine = engine or get_engine()
        start = time.perf_counter()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
        
        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
