"""
Request dependencies shared by the routers.
"""

from fastapi import HTTPException, Request

from stockpulse.reporting.engine import ReportEngine
from stockpulse.serving.cache import ReportCache


def get_engine(request: Request) -> ReportEngine:
    """The process-wide engine created at startup"""
    return request.app.state.engine


def get_cache(request: Request) -> ReportCache:
    cache = request.app.state.engine.cache
    if cache is None:
        raise HTTPException(status_code=503, detail="Report cache is disabled")
    return cache
