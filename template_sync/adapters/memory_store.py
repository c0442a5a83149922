"""
In-Memory Template Store Adapter.

Thread-safe versioned store for development and testing. A single lock
makes the version check and the field replacement one indivisible step,
which is all the conditional-write contract asks for.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from template_sync.adapters.clock import SystemClock
from template_sync.core.ports.store import (
    Committed,
    NotFound,
    StoreFailure,
    VersionConflict,
    WriteResult,
)
from template_sync.core.ports.time import TimePort
from template_sync.domain.entities import Template
from template_sync.domain.versioning import next_version

logger = logging.getLogger(__name__)


class InMemoryTemplateStore:
    """Implements TemplateStorePort over a lock-guarded dict."""

    def __init__(self, time_port: TimePort | None = None) -> None:
        self._records: dict[str, Template] = {}
        self._lock = threading.Lock()
        self._time = time_port or SystemClock()

    def read(self, template_id: str) -> Template | None:
        with self._lock:
            current = self._records.get(template_id)
        # Callers get their own copy; nested containers stay mutable under frozen
        return current.model_copy(deep=True) if current is not None else None

    def conditional_write(
        self,
        template_id: str,
        changes: dict[str, Any],
        expected_version: str,
    ) -> WriteResult:
        with self._lock:
            current = self._records.get(template_id)
            if current is None:
                return NotFound(template_id=template_id)

            if current.version != expected_version:
                return VersionConflict(
                    expected_version=expected_version,
                    current_version=current.version,
                )

            try:
                updated = current.with_changes(
                    {
                        **changes,
                        "version": next_version(current.version),
                        "updated_at": self._time.now_utc(),
                    }
                )
            except ValueError as e:
                return StoreFailure(message=f"Invalid changes for {template_id}", cause=e)

            self._records[template_id] = updated

        logger.debug("Committed %s at version %s", template_id, updated.version)
        return Committed(template=updated.model_copy(deep=True))

    def create(self, template: Template) -> Template:
        with self._lock:
            if template.id in self._records:
                raise ValueError(f"Template {template.id} already exists")
            self._records[template.id] = template.model_copy(deep=True)
        return template

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._records)
