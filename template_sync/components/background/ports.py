"""
Background component port definitions.
"""

from __future__ import annotations

from template_sync.components.cache.ports import CacheInvalidatorPort
from template_sync.core.ports.store import TemplateStorePort
from template_sync.core.ports.time import TimePort

__all__ = ["CacheInvalidatorPort", "TemplateStorePort", "TimePort"]
