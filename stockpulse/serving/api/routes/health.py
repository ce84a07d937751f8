"""
Health Check Endpoints
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from stockpulse.config import get_settings
from stockpulse.reporting.engine import ReportEngine
from stockpulse.serving.api.dependencies import get_engine

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: ReportEngine = Depends(get_engine)) -> HealthResponse:
    """
    Application status, report cache occupancy and the configured shop.

    No call is made to Shopify; a health probe must not spend API budget.
    """
    settings = get_settings()
    checks: Dict[str, Any] = {
        "shopify": {
            "shop": engine.client.shop,
            "api_version": engine.client.api_version,
            "api_generation": engine.options.api_generation,
        },
    }
    if engine.cache is not None:
        checks["cache"] = {"size": len(engine.cache), "max_entries": engine.cache.max_entries}

    return HealthResponse(
        status="healthy",
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 if the application is running."""
    return {"status": "alive"}


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus exposition of report and API-call counters."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
