"""
Analytics Query Engine

Translates (site, time range, timezone, filters) into aggregate queries over
the generic event store and shapes the results.
"""
from .columns import COLUMN_MAPPINGS, ColumnKind, LogicalField, PhysicalColumn, physical_column_of
from .engine import AnalyticsEngine, BREAKDOWN_FIELDS, serialize_result
from .exceptions import (
    AnalyticsError,
    InvalidIntervalError,
    InvalidParameterError,
    InvalidTimezoneError,
    MissingParameterError,
    QueryExecutionError,
    AnalyticsRequestError,
    UnknownEndpointError,
    UnknownFieldError,
)
from .filters import FilterSet, compile_filters
from .metrics import bounce_rate, has_sufficient_bounce_data
from .query_builder import AnalyticsQueryBuilder, ColumnStore
from .requests import AggregateRequest, Endpoint, Pagination, build_request
from .results import BreakdownRow, DerivedStats, EarliestEvents, ScalarCounts, TimeSeriesPoint
from .time_range import Bucket, TimeRange, resolve_time_range

__all__ = [
    "COLUMN_MAPPINGS",
    "ColumnKind",
    "LogicalField",
    "PhysicalColumn",
    "physical_column_of",
    "AnalyticsEngine",
    "BREAKDOWN_FIELDS",
    "serialize_result",
    "AnalyticsError",
    "InvalidIntervalError",
    "InvalidParameterError",
    "InvalidTimezoneError",
    "MissingParameterError",
    "QueryExecutionError",
    "AnalyticsRequestError",
    "UnknownEndpointError",
    "UnknownFieldError",
    "FilterSet",
    "compile_filters",
    "bounce_rate",
    "has_sufficient_bounce_data",
    "AnalyticsQueryBuilder",
    "ColumnStore",
    "AggregateRequest",
    "Endpoint",
    "Pagination",
    "build_request",
    "BreakdownRow",
    "DerivedStats",
    "EarliestEvents",
    "ScalarCounts",
    "TimeSeriesPoint",
    "Bucket",
    "TimeRange",
    "resolve_time_range",
]
