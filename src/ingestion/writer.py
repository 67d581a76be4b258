"""
Event Writer

Maps logical event records onto the generic blob/double columns of the event
store and inserts them in batches. The beacon wire format is handled by the
collector in front of this; records arrive here already parsed.
"""

from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncEngine

from src.analytics.columns import LogicalField, physical_column_of
from src.database.models import build_events_table

logger = structlog.get_logger(__name__)

# Dataclass attribute -> logical field
_RECORD_FIELDS = {
    "host": LogicalField.HOST,
    "user_agent": LogicalField.USER_AGENT,
    "path": LogicalField.PATH,
    "country": LogicalField.COUNTRY,
    "referrer": LogicalField.REFERRER,
    "browser_name": LogicalField.BROWSER_NAME,
    "device_model": LogicalField.DEVICE_MODEL,
    "site_id": LogicalField.SITE_ID,
    "browser_version": LogicalField.BROWSER_VERSION,
    "device_type": LogicalField.DEVICE_TYPE,
    "event_name": LogicalField.EVENT_NAME,
    "event_properties": LogicalField.EVENT_PROPERTIES,
    "event_category": LogicalField.EVENT_CATEGORY,
    "event_target": LogicalField.EVENT_TARGET,
    "new_visitor": LogicalField.NEW_VISITOR,
    "new_session": LogicalField.NEW_SESSION,
    "bounce": LogicalField.BOUNCE,
    "event_value": LogicalField.EVENT_VALUE,
}


@dataclass
class EventRecord:
    """A pageview or custom event, in logical terms."""
    site_id: str
    timestamp: datetime
    host: str = ""
    user_agent: str = ""
    path: str = ""
    country: str = ""
    referrer: str = ""
    browser_name: str = ""
    device_model: str = ""
    browser_version: str = ""
    device_type: str = ""
    event_name: str = ""
    event_properties: str = ""
    event_category: str = ""
    event_target: str = ""
    new_visitor: int = 0
    new_session: int = 0
    bounce: int = 0
    event_value: Optional[float] = None
    sample_interval: int = 1
    
    @property
    def is_event(self) -> bool:
        return bool(self.event_name)


def to_row(record: EventRecord) -> Dict[str, Any]:
    """Physical row for ``record``: ``{"blob3": "/pricing", "double1": 1, ...}``."""
    timestamp = record.timestamp
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(UTC).replace(tzinfo=None)
    
    row: Dict[str, Any] = {
        "timestamp": timestamp,
        "_sample_interval": record.sample_interval,
    }
    for attr in fields(record):
        field = _RECORD_FIELDS.get(attr.name)
        if field is None:
            continue
        row[physical_column_of(field).name] = getattr(record, attr.name)
    return row


async def write_events(
    engine: AsyncEngine,
    records: Iterable[EventRecord],
    table: Optional[Table] = None,
    chunk_size: int = 1000,
) -> int:
    """
    Insert records in chunks.
    
    Returns:
        int: Number of rows written
    """
    table = table if table is not None else build_events_table()
    rows: List[Dict[str, Any]] = [to_row(r) for r in records]
    if not rows:
        return 0
    
    async with engine.begin() as conn:
        for i in range(0, len(rows), chunk_size):
            await conn.execute(table.insert(), rows[i:i + chunk_size])
    
    logger.info("Inserted events", rows=len(rows), table=table.name)
    return len(rows)
