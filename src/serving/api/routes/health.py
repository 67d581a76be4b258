"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import UTC, datetime
from typing import Dict, Any

from fastapi import APIRouter, Response
from pydantic import BaseModel

from src.config import get_settings
from src.database.connection import check_database_health

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Comprehensive health check endpoint.
    
    Checks:
    - Event store connectivity
    - Redis connectivity (when the response cache is enabled)
    """
    settings = get_settings()
    checks = {}
    overall_status = "healthy"
    
    db_health = await check_database_health()
    checks["event_store"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"
    
    if settings.redis.cache_enabled:
        try:
            from src.serving.cache import get_redis
            redis = get_redis()
            await redis.ping()
            checks["redis"] = {"status": "healthy"}
        except Exception as e:
            checks["redis"] = {"status": "unhealthy", "error": str(e)}
            if overall_status == "healthy":
                overall_status = "degraded"
    
    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(UTC),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.
    
    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.
    
    Returns 200 if the event store is reachable.
    """
    db_health = await check_database_health()
    
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "event_store_unavailable"}
    
    return {"status": "ready"}
