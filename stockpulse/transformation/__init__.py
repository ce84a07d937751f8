"""
Data Transformation Module
"""
from .aggregator import SalesAggregator, aggregate_lines
from .enrichers import InventoryEnricher, LocationDirectory

__all__ = [
    "SalesAggregator",
    "aggregate_lines",
    "InventoryEnricher",
    "LocationDirectory",
]
