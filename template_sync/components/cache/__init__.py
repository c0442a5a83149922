"""
Cache component - Read-through, write-invalidated template cache.
"""

from .component import TemplateCache
from .models import CacheEntry, CacheStats, FillToken
from .ports import CacheInvalidatorPort, TimePort

__all__ = [
    # Component
    "TemplateCache",
    # Models
    "CacheEntry",
    "CacheStats",
    "FillToken",
    # Ports
    "CacheInvalidatorPort",
    "TimePort",
]
