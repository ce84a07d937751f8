"""
Reporting Module
"""
from .engine import EngineOptions, ReportEngine, ReportRequest, ReportResult
from .periods import DateRange, compute_range

__all__ = [
    "EngineOptions",
    "ReportEngine",
    "ReportRequest",
    "ReportResult",
    "DateRange",
    "compute_range",
]
