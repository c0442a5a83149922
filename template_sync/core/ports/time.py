"""
Time Port.

Wall-clock time for record timestamps, a monotonic clock for retry
deadlines, and a cooperative sleep for backoff waits. Injected everywhere
so retry and cooldown logic can be tested without real waiting.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Time source and scheduler abstraction."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...

    def monotonic(self) -> float:
        """Seconds from an arbitrary, never-decreasing origin."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block the calling thread only; must not hold shared resources."""
        ...
