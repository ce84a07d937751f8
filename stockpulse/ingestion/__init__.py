"""
Data Ingestion Module
"""
from .client import ApiRequest, ApiResponse, RateLimiter, ShopifyClient
from .collector import GraphQLOrderCollector, OrderCollector, RestOrderCollector, build_collector

__all__ = [
    "ApiRequest",
    "ApiResponse",
    "RateLimiter",
    "ShopifyClient",
    "GraphQLOrderCollector",
    "OrderCollector",
    "RestOrderCollector",
    "build_collector",
]
