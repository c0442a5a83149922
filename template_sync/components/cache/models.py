"""
Cache component models.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from template_sync.domain.entities import Template


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of a template as it was when the entry was installed."""

    template: Template
    version: str
    cached_at: datetime
    # Monotonic timestamp used for max-age checks
    cached_at_monotonic: float


@dataclass(frozen=True)
class FillToken:
    """
    Taken before a read-through store read.

    A put carrying a token installs nothing if the id (or the whole cache)
    was invalidated after the token was taken.
    """

    template_id: str
    generation: int
    epoch: int


@dataclass(frozen=True)
class CacheStats:
    """Counters for cache observability."""

    hits: int
    misses: int
    invalidations: int
    rejected_fills: int
    size: int
    # Ids with a live invalidation counter
    tracked_ids: int = 0
