"""
FastAPI Application

Main entry point for the StockPulse report API.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware

from stockpulse.config import get_settings
from stockpulse.config.logging import configure_logging
from stockpulse.ingestion.client import RateLimiter, ShopifyClient
from stockpulse.reporting.engine import EngineOptions, ReportEngine
from stockpulse.serving.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from stockpulse.serving.api.routes import cache_router, health_router, reports_router
from stockpulse.serving.cache import ReportCache

settings = get_settings()
logger = structlog.get_logger(__name__)


def build_engine() -> ReportEngine:
    """One client and one cache per process"""
    options = EngineOptions.from_settings(settings)
    client = ShopifyClient.from_settings(
        settings,
        rate_limiter=RateLimiter(options.rate_limit_calls_per_second),
    )
    cache = ReportCache.from_settings(settings, max_entries=options.cache_max_entries)
    return ReportEngine(client, cache=cache, options=options)


def create_app(engine: Optional[ReportEngine] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A prebuilt engine can be passed in (tests); otherwise one is built from
    settings at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        owns_engine = engine is None
        app.state.engine = engine or build_engine()

        logger.info(
            "Starting StockPulse API",
            shop=app.state.engine.client.shop,
            api_generation=app.state.engine.options.api_generation,
            environment=settings.app_env,
        )

        yield

        logger.info("Shutting down...")
        if owns_engine:
            await app.state.engine.client.aclose()

    app = FastAPI(
        title="StockPulse API",
        description="Inventory-aware sales analytics for Shopify stores",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["Reports"])
    app.include_router(cache_router, prefix="/api/v1/cache", tags=["Cache"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "StockPulse API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
