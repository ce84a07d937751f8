"""
Sales Report Endpoints

A failed run answers 502 with a structured error body, so callers can tell
it apart from a successful report that simply has no sales.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from stockpulse.exceptions import StockPulseError
from stockpulse.reporting.engine import ReportEngine, ReportRequest
from stockpulse.serving.api.dependencies import get_engine

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/sales")
async def sales_report(
    period: str = Query("daily", pattern="^(daily|weekly|monthly)$"),
    today: bool = False,
    include_all_locations: Optional[bool] = None,
    debug: bool = Query(False, description="Bypass the report cache"),
    engine: ReportEngine = Depends(get_engine),
) -> Any:
    """
    Sales, stock, reorder, ABC and dead-stock report for a period.

    - **period**: daily, weekly or monthly
    - **today**: current period instead of the last closed one
    - **include_all_locations**: count stock at inactive locations too
    """
    request = ReportRequest(
        period=period,
        today=today,
        include_all_locations=include_all_locations,
        bypass_cache=debug,
    )

    try:
        result = await engine.run(request)
    except StockPulseError as e:
        logger.error("Report run failed", error=e.message, error_type=type(e).__name__)
        body: Dict[str, Any] = {"success": False, **e.to_dict()}
        return JSONResponse(status_code=502, content=body)

    headers = {"X-Cache": "HIT" if result.cached else "MISS"}
    return JSONResponse(content={"success": True, **result.to_dict()}, headers=headers)
