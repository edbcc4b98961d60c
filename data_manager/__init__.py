"""
Data management package for the VaR pipeline.
Handles price loading, validation, and result storage.
"""

from .data_loader import PriceLoader
from .data_validator import PriceValidator
from .database import VaRDatabase

__all__ = ['PriceLoader', 'PriceValidator', 'VaRDatabase']
