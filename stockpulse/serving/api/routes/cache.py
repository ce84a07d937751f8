"""
Report Cache Endpoints
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends

from stockpulse.serving.api.dependencies import get_cache
from stockpulse.serving.cache import ReportCache

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/stats")
async def cache_stats(cache: ReportCache = Depends(get_cache)) -> Dict[str, Any]:
    return cache.stats()


@router.delete("")
async def clear_cache(cache: ReportCache = Depends(get_cache)) -> Dict[str, int]:
    cleared = cache.clear()
    logger.info("Report cache cleared", entries=cleared)
    return {"cleared": cleared}
