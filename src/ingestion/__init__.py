"""
Ingestion Module
"""
from .writer import EventRecord, to_row, write_events

__all__ = [
    "EventRecord",
    "to_row",
    "write_events",
]
