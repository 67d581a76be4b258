"""
FastAPI Application Factory

Creates and configures the analytics API application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from src.analytics.exceptions import AnalyticsError, AnalyticsRequestError
from src.config import get_settings
from src.database.connection import init_database, close_database
from src.serving.cache import init_redis, close_redis
from src.serving.api.middleware import RequestLoggingMiddleware
from src.serving.api.routes import health_router, analytics_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    from src.config.logging import configure_logging
    configure_logging()
    
    settings = get_settings()
    logger.info("Starting Site Analytics API", environment=settings.app_env)
    
    try:
        await init_database(create_tables=settings.is_development)
    except Exception as e:
        logger.warning("Event store init failed", error=str(e))
    
    if settings.redis.cache_enabled:
        try:
            await init_redis()
        except Exception as e:
            logger.warning("Redis init failed", error=str(e))
    
    yield
    
    logger.info("Shutting down...")
    await close_database()
    if settings.redis.cache_enabled:
        await close_redis()


async def handle_validation_error(request: Request, exc: AnalyticsRequestError) -> JSONResponse:
    logger.info("Rejected analytics request", error=exc.code, detail=exc.message)
    return JSONResponse(status_code=400, content=exc.to_dict())


async def handle_analytics_error(request: Request, exc: AnalyticsError) -> JSONResponse:
    logger.error("Analytics request failed", error=exc.code, detail=exc.message, **exc.details)
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "detail": "Internal Server Error"},
    )


def create_api_app() -> FastAPI:
    """
    Create and configure FastAPI application.
    
    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()
    app = FastAPI(
        title="Site Analytics API",
        description="Aggregated pageview and event analytics",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    
    # Most specific handler wins: validation errors are 400, the rest 500
    app.add_exception_handler(AnalyticsRequestError, handle_validation_error)
    app.add_exception_handler(AnalyticsError, handle_analytics_error)
    
    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    
    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Site Analytics API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }
    
    return app
