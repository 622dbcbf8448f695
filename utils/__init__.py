"""
Configuration and display helpers for the estimator service.
"""

from .formatting import format_currency, format_percent, format_price
from .config import Config

__all__ = ["format_currency", "format_percent", "format_price", "Config"]
