"""
StockPulse - inventory-aware sales analytics for Shopify stores.
"""

__version__ = "1.0.0"
