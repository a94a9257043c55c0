"""
Utility modules for the comparables engine.
"""

from .formatting import format_currency, format_distance, format_date
from .config import Config

__all__ = ["format_currency", "format_distance", "format_date", "Config"]
