"""
Analytics Engine

Request-scoped facade over the query builder: dispatches a validated
AggregateRequest to the right query shape and applies derived metrics.
Holds no state besides the store handle; safe to share between requests.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Tuple, Union

import structlog

from src.analytics.columns import LogicalField
from src.analytics.metrics import derive_stats
from src.analytics.query_builder import AnalyticsQueryBuilder, ColumnStore
from src.analytics.requests import AggregateRequest, Endpoint
from src.analytics.results import BreakdownRow, DerivedStats, TimeSeriesPoint

logger = structlog.get_logger(__name__)

AggregateResult = Union[DerivedStats, List[TimeSeriesPoint], List[BreakdownRow]]

# Group-by fields per breakdown endpoint. "browserversions" groups by name and
# version; without a browserName filter it lists versions across browsers.
BREAKDOWN_FIELDS: Mapping[Endpoint, Tuple[LogicalField, ...]] = {
    Endpoint.PATHS: (LogicalField.PATH,),
    Endpoint.REFERRERS: (LogicalField.REFERRER,),
    Endpoint.COUNTRIES: (LogicalField.COUNTRY,),
    Endpoint.BROWSERS: (LogicalField.BROWSER_NAME,),
    Endpoint.BROWSER_VERSIONS: (LogicalField.BROWSER_NAME, LogicalField.BROWSER_VERSION),
    Endpoint.DEVICES: (LogicalField.DEVICE_MODEL,),
    Endpoint.EVENTS: (LogicalField.EVENT_NAME,),
}

# Pageview rows carry no event name; the events breakdown only lists events.
EXCLUDE_UNKNOWN = frozenset({Endpoint.EVENTS})


class AnalyticsEngine:
    """
    Runs analytics queries against a column store.
    
    Example:
        engine = AnalyticsEngine(SqlColumnStore(async_engine))
        request = build_request({"siteId": "site1", "endpoint": "paths"})
        rows = await engine.run(request)
    """
    
    def __init__(self, store: ColumnStore):
        self.queries = AnalyticsQueryBuilder(store)
    
    async def run(self, request: AggregateRequest) -> AggregateResult:
        """Execute ``request`` and return its endpoint's result shape."""
        log = logger.bind(**request.describe())
        log.info("Running analytics query")
        
        if request.endpoint is Endpoint.STATS:
            result = await self.stats(request)
        elif request.endpoint is Endpoint.TIMESERIES:
            result = await self.queries.time_series(
                request.site_id, request.time_range, request.filters
            )
        else:
            result = await self.breakdown(request)
        
        log.info("Analytics query completed")
        return result
    
    async def stats(self, request: AggregateRequest) -> DerivedStats:
        """
        Ranged counts plus the all-time bounce gate.
        
        Both lookups run concurrently; if either fails the whole request fails.
        """
        counts, earliest = await asyncio.gather(
            self.queries.scalar_counts(request.site_id, request.time_range, request.filters),
            self.queries.earliest_events(request.site_id),
        )
        return derive_stats(counts, earliest, request.time_range.start)
    
    async def breakdown(self, request: AggregateRequest) -> List[BreakdownRow]:
        """Paginated top-N rows for a breakdown endpoint."""
        return await self.queries.top_breakdown(
            request.site_id,
            request.time_range,
            request.filters,
            BREAKDOWN_FIELDS[request.endpoint],
            limit=request.pagination.limit,
            offset=request.pagination.offset,
            exclude_unknown=request.endpoint in EXCLUDE_UNKNOWN,
            endpoint=request.endpoint.value,
        )


def serialize_result(result: AggregateResult) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
    """JSON-ready form of any engine result."""
    if isinstance(result, list):
        return [item.to_dict() for item in result]
    return result.to_dict()
