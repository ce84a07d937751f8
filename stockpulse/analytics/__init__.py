from stockpulse.analytics.abc import classify_abc
from stockpulse.analytics.dead_stock import DeadStockDetector, DeadStockPolicy
from stockpulse.analytics.reorder import ReorderPlan, build_reorder_rows, compute_rop

__all__ = [
    "classify_abc",
    "DeadStockDetector",
    "DeadStockPolicy",
    "ReorderPlan",
    "build_reorder_rows",
    "compute_rop",
]
