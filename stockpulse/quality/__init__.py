"""
Data Quality Module
"""
from .validators import OrderValidator, ValidationResult

__all__ = [
    "OrderValidator",
    "ValidationResult",
]
