"""
Request model and validation.

``build_request`` turns raw query parameters into an AggregateRequest and
rejects bad input before any store round trip.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from src.analytics.exceptions import (
    InvalidParameterError,
    MissingParameterError,
    UnknownEndpointError,
)
from src.analytics.filters import FilterSet, compile_filters
from src.analytics.time_range import DEFAULT_TIMEZONE, TimeRange, resolve_time_range

DEFAULT_INTERVAL = "24h"
DEFAULT_LIMIT = 10
DEFAULT_OFFSET = 0


class Endpoint(str, Enum):
    """Result shapes served by the engine"""
    STATS = "stats"
    TIMESERIES = "timeseries"
    PATHS = "paths"
    REFERRERS = "referrers"
    COUNTRIES = "countries"
    BROWSERS = "browsers"
    BROWSER_VERSIONS = "browserversions"
    DEVICES = "devices"
    EVENTS = "events"
    
    @property
    def is_breakdown(self) -> bool:
        return self not in (Endpoint.STATS, Endpoint.TIMESERIES)


@dataclass(frozen=True)
class Pagination:
    """Breakdown page window: rows ``[offset, offset + limit)``."""
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET
    
    def __post_init__(self):
        if self.limit < 1:
            raise InvalidParameterError("limit", self.limit, "must be a positive integer")
        if self.offset < 0:
            raise InvalidParameterError("offset", self.offset, "must be zero or greater")


@dataclass(frozen=True)
class AggregateRequest:
    """A validated analytics query."""
    site_id: str
    time_range: TimeRange
    endpoint: Endpoint = Endpoint.STATS
    filters: FilterSet = field(default_factory=FilterSet)
    pagination: Pagination = field(default_factory=Pagination)
    interval: str = DEFAULT_INTERVAL
    
    def __post_init__(self):
        if not self.site_id or not self.site_id.strip():
            raise MissingParameterError("siteId")
    
    def cache_key(self) -> str:
        """Stable key for response caching; pagination only matters for breakdowns."""
        parts = [
            self.site_id,
            self.endpoint.value,
            self.interval,
            self.time_range.timezone,
            ",".join(f"{k}={v}" for k, v in self.filters.to_dict().items()),
        ]
        if self.endpoint.is_breakdown:
            parts.append(f"{self.pagination.limit}:{self.pagination.offset}")
        return "|".join(parts)
    
    def describe(self) -> Dict[str, Any]:
        """Key/value summary for structured logs."""
        return {
            "site_id": self.site_id,
            "endpoint": self.endpoint.value,
            "interval": self.interval,
            "timezone": self.time_range.timezone,
            "filters": self.filters.to_dict(),
        }


def _parse_int(params: Mapping[str, Optional[str]], name: str, default: int) -> int:
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidParameterError(name, raw, "must be an integer") from None


def parse_endpoint(value: Optional[str]) -> Endpoint:
    """Resolve an endpoint name; empty means ``stats``."""
    if not value:
        return Endpoint.STATS
    try:
        return Endpoint(value)
    except ValueError:
        raise UnknownEndpointError(value) from None


def build_request(
    params: Mapping[str, Optional[str]],
    now: Optional[datetime] = None,
    default_interval: str = DEFAULT_INTERVAL,
    default_timezone: str = DEFAULT_TIMEZONE,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: Optional[int] = None,
) -> AggregateRequest:
    """
    Validate raw query parameters.
    
    Recognized keys: ``siteId``, ``interval``, ``timezone``, ``endpoint``,
    ``limit``, ``offset`` and the filter fields. Everything else is ignored.
    
    Raises:
        MissingParameterError: ``siteId`` absent or blank
        UnknownEndpointError: ``endpoint`` not served
        InvalidParameterError: malformed ``limit``/``offset`` on a breakdown
        InvalidIntervalError: unrecognized ``interval``
    """
    site_id = params.get("siteId")
    if not site_id or not site_id.strip():
        raise MissingParameterError("siteId")
    
    endpoint = parse_endpoint(params.get("endpoint"))
    
    # stats and timeseries ignore pagination entirely
    if endpoint.is_breakdown:
        pagination = Pagination(
            limit=_parse_int(params, "limit", default_limit),
            offset=_parse_int(params, "offset", DEFAULT_OFFSET),
        )
        if max_limit is not None and pagination.limit > max_limit:
            raise InvalidParameterError("limit", pagination.limit, f"must not exceed {max_limit}")
    else:
        pagination = Pagination(limit=default_limit)
    
    interval = params.get("interval") or default_interval
    time_range = resolve_time_range(
        interval,
        params.get("timezone") or default_timezone,
        now=now,
    )
    
    return AggregateRequest(
        site_id=site_id,
        time_range=time_range,
        endpoint=endpoint,
        filters=compile_filters(params),
        pagination=pagination,
        interval=interval,
    )
