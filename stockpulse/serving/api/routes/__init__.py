"""
API Routes Module
"""
from .cache import router as cache_router
from .health import router as health_router
from .reports import router as reports_router

__all__ = [
    "cache_router",
    "health_router",
    "reports_router",
]
