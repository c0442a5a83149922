"""
Cache component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Port for time operations."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

    def monotonic(self) -> float:
        """Get monotonic seconds."""
        ...


class CacheInvalidatorPort(Protocol):
    """Invalidation hook for writers that bypass the coordinator."""

    def invalidate(self, template_id: str) -> None:
        """Drop the cached snapshot for one template."""
        ...
