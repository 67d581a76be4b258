"""
Analytics API Endpoint

Single query endpoint in front of the analytics engine:

    GET /api/v1/analytics?siteId=...&endpoint=stats|timeseries|paths|...

Validation errors become 400 responses before any store query is issued;
engine failures become a generic 500 (see the exception handlers in
src.serving.api.main). The optional Redis response cache never fails a
request: read and write errors are logged and the query runs uncached.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import structlog
from redis.exceptions import RedisError

from src.analytics import AnalyticsEngine, build_request, serialize_result
from src.config import get_settings
from src.database.connection import get_column_store
from src.serving.cache import analytics_cache

router = APIRouter()
logger = structlog.get_logger(__name__)


def get_analytics_engine() -> AnalyticsEngine:
    """FastAPI dependency: engine over the configured event store."""
    return AnalyticsEngine(get_column_store())


@router.get("")
async def get_analytics(
    request: Request,
    engine: AnalyticsEngine = Depends(get_analytics_engine),
) -> JSONResponse:
    """
    Query analytics for a site.
    
    Query parameters:
    - siteId (required)
    - interval: today, yesterday, 24h (default), 1d, 7d, 30d, 90d or YYYY-MM-DD..YYYY-MM-DD
    - timezone: IANA zone id (default UTC; unknown zones fall back to UTC)
    - endpoint: stats (default), timeseries, paths, referrers, countries,
      browsers, browserversions, devices, events
    - limit / offset: breakdown pagination (default 10 / 0)
    - path, referrer, deviceModel, deviceType, country, browserName,
      browserVersion: equality filters
    """
    settings = get_settings()
    aggregate_request = build_request(
        request.query_params,
        default_interval=settings.analytics.default_interval,
        default_timezone=settings.analytics.default_timezone,
        default_limit=settings.analytics.default_limit,
        max_limit=settings.analytics.max_limit,
    )
    headers = {"Cache-Control": f"public, max-age={settings.analytics.cache_control_max_age}"}
    cache_enabled = settings.redis.cache_enabled
    
    if cache_enabled:
        cached = await _read_cache(aggregate_request.cache_key())
        if cached is not None:
            logger.debug("Returning cached analytics", endpoint=aggregate_request.endpoint.value)
            return JSONResponse(content=cached, headers=headers)
    
    payload = serialize_result(await engine.run(aggregate_request))
    
    if cache_enabled:
        await _write_cache(aggregate_request.cache_key(), payload)
    
    return JSONResponse(content=payload, headers=headers)


async def _read_cache(key: str) -> Optional[Any]:
    # A cache outage degrades to uncached responses
    try:
        return await analytics_cache.get(key)
    except (RedisError, RuntimeError, OSError) as e:
        logger.warning("Response cache read failed", error=str(e), error_type=type(e).__name__)
        return None


async def _write_cache(key: str, payload: Any) -> None:
    try:
        await analytics_cache.set(key, payload)
    except (RedisError, RuntimeError, OSError) as e:
        logger.warning("Response cache write failed", error=str(e), error_type=type(e).__name__)
