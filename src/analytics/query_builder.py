"""
Aggregation Query Builder

Composes column mapping, time range and filters into SQLAlchemy Core
statements against the generic event table and runs them through a
ColumnStore. Every value reaches the store as a bound parameter.

Counts are weighted by ``_sample_interval`` so sampled rows stand for the
events they represent:

- views: ``SUM(_sample_interval)``
- visitors: ``SUM(_sample_interval)`` over rows flagged newVisitor
- bounces: ``SUM(_sample_interval * bounce)``; a bounce of -1 retracts an
  earlier bounce in the same session
"""

from datetime import UTC, datetime
from typing import Any, List, Optional, Protocol, Sequence, Tuple, Union

import structlog
from sqlalchemy import String, Table, and_, case, func, literal_column, select
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import ColumnElement, Select
from sqlalchemy.sql.functions import FunctionElement

from src.analytics.columns import LogicalField, physical_column_of
from src.analytics.exceptions import AnalyticsError, QueryExecutionError
from src.analytics.filters import FilterSet
from src.analytics.results import BreakdownRow, EarliestEvents, ScalarCounts, TimeSeriesPoint
from src.analytics.shaping import fill_time_series, shape_breakdown
from src.analytics.time_range import TimeRange

logger = structlog.get_logger(__name__)

GroupField = Union[LogicalField, Sequence[LogicalField]]

_EMPTY = literal_column("''", String)
_SPACE = literal_column("' '", String)


class code_point_order(FunctionElement):
    """
    Sort key that compares strings by code point regardless of the database
    locale, so SQL pagination agrees with ``shape_breakdown``.
    """
    
    type = String()
    name = "code_point_order"
    inherit_cache = True


@compiles(code_point_order)
def _compile_code_point_order(element, compiler, **kw):
    # SQLite compares with BINARY unless told otherwise
    return compiler.process(element.clauses, **kw)


@compiles(code_point_order, "postgresql")
def _compile_code_point_order_postgresql(element, compiler, **kw):
    return f'{compiler.process(element.clauses, **kw)} COLLATE "C"'


class ColumnStore(Protocol):
    """The external event store, as seen by the query builder."""
    
    table: Table
    
    async def fetch_all(self, statement: Select) -> Sequence[Any]:
        """Execute ``statement`` and return all rows."""
        ...


def to_store_time(moment: datetime) -> datetime:
    """Aware instant -> naive UTC, the representation used by the store."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC).replace(tzinfo=None)


class AnalyticsQueryBuilder:
    """
    One method per result shape. All methods take the same FilterSet type,
    so a compiled filter set is reusable across every endpoint.
    """
    
    def __init__(self, store: ColumnStore):
        self._store = store
        self._table = store.table
    
    # ------------------------------------------------------------------
    # Expression helpers
    # ------------------------------------------------------------------
    
    def column(self, field: LogicalField) -> ColumnElement:
        """Physical column for a logical field."""
        return self._table.c[physical_column_of(field).name]
    
    @property
    def _timestamp(self) -> ColumnElement:
        return self._table.c["timestamp"]
    
    @property
    def _weight(self) -> ColumnElement:
        return self._table.c["_sample_interval"]
    
    def _predicate(
        self,
        site_id: str,
        time_range: Optional[TimeRange] = None,
        filters: Optional[FilterSet] = None,
    ) -> ColumnElement:
        clauses = [self.column(LogicalField.SITE_ID) == site_id]
        if time_range is not None:
            clauses.append(self._timestamp >= to_store_time(time_range.start))
            clauses.append(self._timestamp < to_store_time(time_range.end))
        for field, value in filters or ():
            clauses.append(self.column(field) == value)
        return and_(*clauses)
    
    def _new_visitor_weight(self) -> ColumnElement:
        return case((self.column(LogicalField.NEW_VISITOR) == 1, self._weight), else_=0)
    
    def _bucket_index(self, bucket_starts: List[datetime]) -> ColumnElement:
        """CASE mapping a timestamp to the index of the bucket containing it."""
        if len(bucket_starts) == 1:
            return literal_column("0")
        whens = [
            (self._timestamp < to_store_time(boundary), index)
            for index, boundary in enumerate(bucket_starts[1:])
        ]
        return case(*whens, else_=len(bucket_starts) - 1)
    
    def _label_expression(self, fields: Tuple[LogicalField, ...]) -> ColumnElement:
        parts = [func.coalesce(self.column(f), _EMPTY) for f in fields]
        if len(parts) == 1:
            return parts[0]
        joined = parts[0]
        for part in parts[1:]:
            joined = joined + _SPACE + part
        return func.trim(joined)
    
    async def _fetch(self, endpoint: str, statement: Select) -> Sequence[Any]:
        try:
            rows = await self._store.fetch_all(statement)
        except AnalyticsError:
            raise
        except Exception as e:
            logger.error(
                "Query execution failed",
                endpoint=endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise QueryExecutionError(endpoint, e) from e
        logger.debug("Query executed", endpoint=endpoint, rows=len(rows))
        return rows
    
    # ------------------------------------------------------------------
    # Query shapes
    # ------------------------------------------------------------------
    
    def scalar_counts_statement(
        self, site_id: str, time_range: TimeRange, filters: FilterSet
    ) -> Select:
        return select(
            func.coalesce(func.sum(self._weight), 0).label("views"),
            func.coalesce(func.sum(self._new_visitor_weight()), 0).label("visitors"),
            func.coalesce(
                func.sum(self._weight * func.coalesce(self.column(LogicalField.BOUNCE), 0)), 0
            ).label("bounces"),
        ).where(self._predicate(site_id, time_range, filters))
    
    async def scalar_counts(
        self, site_id: str, time_range: TimeRange, filters: FilterSet, endpoint: str = "stats"
    ) -> ScalarCounts:
        """Weighted views, visitors and bounces within range matching filters."""
        rows = await self._fetch(endpoint, self.scalar_counts_statement(site_id, time_range, filters))
        if not rows:
            return ScalarCounts()
        row = rows[0]
        return ScalarCounts(
            views=int(row.views or 0),
            visitors=int(row.visitors or 0),
            bounces=int(row.bounces or 0),
        )
    
    def earliest_events_statement(self, site_id: str) -> Select:
        bounce = self.column(LogicalField.BOUNCE)
        return select(
            func.min(self._timestamp).label("earliest_event"),
            func.min(case((bounce == 1, self._timestamp))).label("earliest_bounce"),
        ).where(self._predicate(site_id))
    
    async def earliest_events(self, site_id: str, endpoint: str = "stats") -> EarliestEvents:
        """All-time, unfiltered earliest event and earliest bounce for a site."""
        rows = await self._fetch(endpoint, self.earliest_events_statement(site_id))
        if not rows:
            return EarliestEvents()
        row = rows[0]
        return EarliestEvents(
            earliest_event=_utc_or_none(row.earliest_event),
            earliest_bounce=_utc_or_none(row.earliest_bounce),
        )
    
    def time_series_statement(
        self, site_id: str, time_range: TimeRange, filters: FilterSet
    ) -> Select:
        bucketed = (
            select(
                self._bucket_index(time_range.bucket_starts()).label("bucket"),
                self._weight.label("weight"),
                self._new_visitor_weight().label("visitor_weight"),
            )
            .where(self._predicate(site_id, time_range, filters))
            .subquery("bucketed")
        )
        return (
            select(
                bucketed.c.bucket,
                func.sum(bucketed.c.weight).label("views"),
                func.sum(bucketed.c.visitor_weight).label("visitors"),
            )
            .group_by(bucketed.c.bucket)
            .order_by(bucketed.c.bucket)
        )
    
    async def time_series(
        self, site_id: str, time_range: TimeRange, filters: FilterSet, endpoint: str = "timeseries"
    ) -> List[TimeSeriesPoint]:
        """One point per bucket in range, empty buckets included as zeros."""
        rows = await self._fetch(endpoint, self.time_series_statement(site_id, time_range, filters))
        counts = {int(row.bucket): (row.views, row.visitors) for row in rows}
        return fill_time_series(time_range, counts)
    
    def breakdown_statement(
        self,
        site_id: str,
        time_range: TimeRange,
        filters: FilterSet,
        group_field: GroupField,
        limit: int,
        offset: int = 0,
        exclude_unknown: bool = False,
    ) -> Select:
        fields = _as_fields(group_field)
        label = self._label_expression(fields)
        predicate = self._predicate(site_id, time_range, filters)
        if exclude_unknown:
            predicate = and_(predicate, label != _EMPTY)
        
        grouped = (
            select(label.label("label"), self._weight.label("weight"))
            .where(predicate)
            .subquery("grouped")
        )
        total = func.sum(grouped.c.weight).label("total")
        return (
            select(grouped.c.label, total)
            .group_by(grouped.c.label)
            .order_by(total.desc(), code_point_order(grouped.c.label).asc())
            .limit(limit)
            .offset(offset)
        )
    
    async def top_breakdown(
        self,
        site_id: str,
        time_range: TimeRange,
        filters: FilterSet,
        group_field: GroupField,
        limit: int = 10,
        offset: int = 0,
        exclude_unknown: bool = False,
        endpoint: Optional[str] = None,
    ) -> List[BreakdownRow]:
        """
        Top-N rows grouped by ``group_field``, paginated in the store.
        
        Args:
            group_field: A LogicalField, or several whose values are joined
                with a space into one label (browser name + version)
            limit: Page size (>= 1)
            offset: Rows to skip (>= 0)
            exclude_unknown: Drop rows whose label is empty
            endpoint: Name reported in errors (defaults to the field name)
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        
        fields = _as_fields(group_field)
        endpoint = endpoint or "+".join(f.value for f in fields)
        statement = self.breakdown_statement(
            site_id, time_range, filters, fields, limit, offset, exclude_unknown
        )
        rows = await self._fetch(endpoint, statement)
        return shape_breakdown((row.label, row.total) for row in rows)


def _as_fields(group_field: GroupField) -> Tuple[LogicalField, ...]:
    if isinstance(group_field, LogicalField):
        return (group_field,)
    fields = tuple(group_field)
    if not fields:
        raise ValueError("At least one group field is required")
    return fields


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
