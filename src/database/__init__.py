"""
Event Store Module
"""
from .connection import (
    SqlColumnStore,
    init_database,
    close_database,
    get_engine,
    get_column_store,
    check_database_health,
)
from .models import Base, build_events_table, events_table

__all__ = [
    "SqlColumnStore",
    "init_database",
    "close_database",
    "get_engine",
    "get_column_store",
    "check_database_health",
    "Base",
    "build_events_table",
    "events_table",
]
