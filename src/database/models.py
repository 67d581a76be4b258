"""
Event Store Schema

The event store is a single wide, append-only table with a fixed set of
generically named columns, mirroring a column-oriented analytics dataset:

- ``timestamp``: event time, stored as naive UTC
- ``_sample_interval``: how many real events this row stands for (1 = unsampled)
- ``blob1..blob20``: string dimensions
- ``double1..double20``: numeric measures and flags

Semantic names (path, country, bounce, ...) are never used as column names.
They are resolved through ``src.analytics.columns.COLUMN_MAPPINGS``.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.orm import DeclarativeBase

from src.analytics.columns import LogicalField, physical_column_of


BLOB_COLUMN_COUNT = 20
DOUBLE_COLUMN_COUNT = 20

DEFAULT_EVENTS_TABLE = "analytics_events"

SITE_ID_COLUMN = physical_column_of(LogicalField.SITE_ID).name


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def build_events_table(name: str = DEFAULT_EVENTS_TABLE, metadata: MetaData = None) -> Table:
    """
    Build the generic event table definition.
    
    Args:
        name: Table name in the store
        metadata: MetaData to register the table on (defaults to Base.metadata)
        
    Returns:
        Table: The event table
    """
    metadata = metadata if metadata is not None else Base.metadata
    if name in metadata.tables:
        return metadata.tables[name]
    
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("timestamp", DateTime, nullable=False),
        Column("_sample_interval", Integer, nullable=False, default=1),
        *[Column(f"blob{i}", String(2000)) for i in range(1, BLOB_COLUMN_COUNT + 1)],
        *[Column(f"double{i}", Float) for i in range(1, DOUBLE_COLUMN_COUNT + 1)],
        Index(f"ix_{name}_site_timestamp", SITE_ID_COLUMN, "timestamp"),
    )


events_table = build_events_table()
