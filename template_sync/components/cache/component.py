"""
Cache component - Read-through, write-invalidated template cache.

Invariants:
- I1: Entries are replaced or deleted, never mutated in place
- I2: invalidate() is visible to every later get() before it returns
- I3: A read-through fill that started before an invalidation never
  installs its (possibly stale) snapshot afterwards
- I4: Writers invalidate, they never refresh

All state sits behind one mutex; no store access happens while it is held.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from template_sync.adapters.clock import SystemClock
from template_sync.domain.entities import Template

from .models import CacheEntry, CacheStats, FillToken
from .ports import TimePort

logger = logging.getLogger(__name__)


class TemplateCache:
    """
    Explicit cache instance owned by the service that constructs it.

    Args:
        time_port: Clock for insertion timestamps and max-age checks.
        max_age_seconds: Optional expiry; None keeps entries until invalidated.
        max_tracked_ids: Bound on per-id invalidation counters. Past it the
            counters are reset and the epoch advances, which rejects every
            fill already in flight (entries are kept).
    """

    def __init__(
        self,
        time_port: TimePort | None = None,
        max_age_seconds: float | None = None,
        max_tracked_ids: int = 10_000,
    ) -> None:
        if max_tracked_ids < 1:
            raise ValueError("max_tracked_ids must be at least 1")
        self._time = time_port or SystemClock()
        self._max_age = max_age_seconds
        self._max_tracked = max_tracked_ids
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        self._rejected_fills = 0

    # --- Lookup ---

    def get(self, template_id: str) -> CacheEntry | None:
        """Pure lookup. Returns None on miss (or expiry)."""
        with self._lock:
            entry = self._entries.get(template_id)
            if entry is not None and self._is_expired(entry):
                del self._entries[template_id]
                entry = None

            if entry is None:
                self._misses += 1
                return None

            self._hits += 1
        # Hand out a private copy so callers cannot reach into the snapshot
        return replace(entry, template=entry.template.model_copy(deep=True))

    def _is_expired(self, entry: CacheEntry) -> bool:
        if self._max_age is None:
            return False
        return self._time.monotonic() - entry.cached_at_monotonic >= self._max_age

    # --- Population ---

    def fill_token(self, template_id: str) -> FillToken:
        """Take a token before reading the store for a read-through fill."""
        with self._lock:
            return FillToken(
                template_id=template_id,
                generation=self._generations.get(template_id, 0),
                epoch=self._epoch,
            )

    def put(
        self,
        template_id: str,
        template: Template,
        version: str,
        *,
        token: FillToken | None = None,
    ) -> bool:
        """
        Insert or replace the entry for template_id.

        Returns:
            False if the token shows an invalidation raced the fill.
        """
        snapshot = template.model_copy(deep=True)
        with self._lock:
            if token is not None and not self._token_is_current(template_id, token):
                self._rejected_fills += 1
                logger.debug("Discarded stale fill for %s at version %s", template_id, version)
                return False

            self._entries[template_id] = CacheEntry(
                template=snapshot,
                version=version,
                cached_at=self._time.now_utc(),
                cached_at_monotonic=self._time.monotonic(),
            )
            return True

    def _token_is_current(self, template_id: str, token: FillToken) -> bool:
        return (
            token.template_id == template_id
            and token.epoch == self._epoch
            and token.generation == self._generations.get(template_id, 0)
        )

    # --- Invalidation ---

    def invalidate(self, template_id: str) -> None:
        """Remove the entry unconditionally. Idempotent."""
        with self._lock:
            self._entries.pop(template_id, None)
            self._generations[template_id] = self._generations.get(template_id, 0) + 1
            self._invalidations += 1
            if len(self._generations) > self._max_tracked:
                self._generations.clear()
                self._epoch += 1
                logger.debug("Reset invalidation counters at epoch %d", self._epoch)

    def invalidate_all(self) -> None:
        """Clear every entry."""
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1
            self._invalidations += 1
        logger.info("Template cache cleared")

    # --- Introspection ---

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                invalidations=self._invalidations,
                rejected_fills=self._rejected_fills,
                size=len(self._entries),
                tracked_ids=len(self._generations),
            )

    def __contains__(self, template_id: object) -> bool:
        with self._lock:
            return template_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
