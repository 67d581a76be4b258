"""
Column Mapping Registry

The event store only knows ``blob1..blobN`` and ``double1..doubleN``. This
module is the single place where semantic field names are bound to those
physical columns.

The table is append-only: a new logical field takes a new, never used index.
Reassigning an index changes the meaning of every row already stored.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping

from src.analytics.exceptions import UnknownFieldError


class LogicalField(str, Enum):
    """Semantic field names, valued by their wire (query string) names."""
    HOST = "host"
    USER_AGENT = "userAgent"
    PATH = "path"
    COUNTRY = "country"
    REFERRER = "referrer"
    BROWSER_NAME = "browserName"
    DEVICE_MODEL = "deviceModel"
    SITE_ID = "siteId"
    BROWSER_VERSION = "browserVersion"
    DEVICE_TYPE = "deviceType"
    EVENT_NAME = "eventName"
    EVENT_PROPERTIES = "eventProperties"
    EVENT_CATEGORY = "eventCategory"
    EVENT_TARGET = "eventTarget"
    NEW_VISITOR = "newVisitor"
    NEW_SESSION = "newSession"
    BOUNCE = "bounce"
    EVENT_VALUE = "eventValue"


class ColumnKind(str, Enum):
    """Physical storage kinds"""
    BLOB = "blob"
    DOUBLE = "double"


@dataclass(frozen=True)
class PhysicalColumn:
    """A generic store column, e.g. ``blob3`` or ``double1``."""
    
    kind: ColumnKind
    index: int
    
    def __post_init__(self):
        if self.index < 1:
            raise ValueError(f"Column index must be positive, got {self.index}")
    
    @property
    def name(self) -> str:
        return f"{self.kind.value}{self.index}"
    
    def __str__(self) -> str:
        return self.name


def _blob(index: int) -> PhysicalColumn:
    return PhysicalColumn(ColumnKind.BLOB, index)


def _double(index: int) -> PhysicalColumn:
    return PhysicalColumn(ColumnKind.DOUBLE, index)


COLUMN_MAPPINGS: Mapping[LogicalField, PhysicalColumn] = {
    # blobs
    LogicalField.HOST: _blob(1),
    LogicalField.USER_AGENT: _blob(2),
    LogicalField.PATH: _blob(3),
    LogicalField.COUNTRY: _blob(4),
    LogicalField.REFERRER: _blob(5),
    LogicalField.BROWSER_NAME: _blob(6),
    LogicalField.DEVICE_MODEL: _blob(7),
    LogicalField.SITE_ID: _blob(8),
    LogicalField.BROWSER_VERSION: _blob(9),
    LogicalField.DEVICE_TYPE: _blob(10),
    # event tracking
    LogicalField.EVENT_NAME: _blob(11),
    LogicalField.EVENT_PROPERTIES: _blob(12),
    LogicalField.EVENT_CATEGORY: _blob(13),
    LogicalField.EVENT_TARGET: _blob(14),
    # doubles
    LogicalField.NEW_VISITOR: _double(1),  # first hit from this visitor in 24h
    LogicalField.NEW_SESSION: _double(2),  # first hit after 30m of inactivity
    LogicalField.BOUNCE: _double(3),  # 1 bounce, -1 retracts an earlier bounce
    LogicalField.EVENT_VALUE: _double(4),
}


def _check_mapping(mapping: Mapping[LogicalField, PhysicalColumn]) -> None:
    """Verify the table is total and injective."""
    missing = [f.value for f in LogicalField if f not in mapping]
    if missing:
        raise RuntimeError(f"Column mapping is missing fields: {missing}")
    
    seen: Dict[str, LogicalField] = {}
    for field, column in mapping.items():
        if column.name in seen:
            raise RuntimeError(
                f"Column {column.name} mapped twice: {seen[column.name].value} and {field.value}"
            )
        seen[column.name] = field


_check_mapping(COLUMN_MAPPINGS)


def physical_column_of(field: LogicalField) -> PhysicalColumn:
    """
    Resolve a logical field to its physical store column.
    
    Raises:
        UnknownFieldError: If ``field`` is not a mapped LogicalField
    """
    try:
        return COLUMN_MAPPINGS[field]
    except (KeyError, TypeError):
        raise UnknownFieldError(field) from None
