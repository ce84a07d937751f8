"""
Synthetic data for development and tests.
"""
from .generators import SyntheticShop

__all__ = ["SyntheticShop"]
