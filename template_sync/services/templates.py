"""
TemplateService - Client-facing facade over the sync subsystem.

Owns the read cache for its lifetime and wires the same instance into
both writer classes, so every commit (live or background) invalidates it.

Data flows:
- get_template: cache -> (miss) store.read -> cache.put
- update_template: coordinator -> store CAS -> cache.invalidate
- process_record: background processor -> store CAS -> cache.invalidate
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from template_sync.adapters.clock import SystemClock
from template_sync.adapters.memory_store import InMemoryTemplateStore
from template_sync.adapters.sqlite.migrator import SQLiteMigrator
from template_sync.adapters.sqlite.store import SQLiteTemplateStore
from template_sync.components.background import (
    BackgroundConfig,
    BackgroundProcessor,
    BatchResult,
    ProcessOutput,
)
from template_sync.components.cache import CacheStats, TemplateCache
from template_sync.components.coordinator import (
    DEFAULT_OPTIONS,
    UpdateCoordinator,
    UpdateOptions,
    UpdateTemplateOutput,
)
from template_sync.core.ports.store import TemplateStorePort
from template_sync.core.ports.time import TimePort
from template_sync.domain.entities import Template, TemplatePatch
from template_sync.rules.models import SyncRules

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(
        self,
        store: TemplateStorePort,
        time_port: TimePort | None = None,
        update_options: UpdateOptions | None = None,
        background_config: BackgroundConfig | None = None,
        cache_max_age_seconds: float | None = None,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._time = time_port or SystemClock()
        self._update_options = update_options or DEFAULT_OPTIONS
        self._cache = TemplateCache(time_port=self._time, max_age_seconds=cache_max_age_seconds)
        self._coordinator = UpdateCoordinator(
            store=store,
            cache=self._cache,
            time_port=self._time,
            default_options=self._update_options,
            rng=rng,
        )
        self._processor = BackgroundProcessor(
            store=store,
            time_port=self._time,
            config=background_config,
            invalidator=self._cache,
            rng=rng,
        )

    @classmethod
    def from_rules(
        cls,
        rules: SyncRules,
        store: TemplateStorePort | None = None,
        time_port: TimePort | None = None,
        base_dir: Path | None = None,
    ) -> TemplateService:
        return cls(
            store=store or build_store(rules, base_dir or Path.cwd(), time_port),
            time_port=time_port,
            update_options=rules.update.to_options(),
            background_config=rules.background.to_config(),
            cache_max_age_seconds=rules.cache.max_age_seconds,
        )

    @property
    def store(self) -> TemplateStorePort:
        return self._store

    @property
    def update_options(self) -> UpdateOptions:
        return self._update_options

    @property
    def cache(self) -> TemplateCache:
        return self._cache

    @property
    def processor(self) -> BackgroundProcessor:
        return self._processor

    # --- Reads ---

    def get_template(self, template_id: str) -> Template | None:
        entry = self._cache.get(template_id)
        if entry is not None:
            logger.debug("Cache hit for %s at version %s", template_id, entry.version)
            return entry.template

        token = self._cache.fill_token(template_id)
        template = self._store.read(template_id)
        if template is None:
            return None

        self._cache.put(template_id, template, template.version, token=token)
        return template

    # --- Writes ---

    def update_template(
        self,
        template_id: str,
        changes: TemplatePatch | Mapping[str, Any],
        options: UpdateOptions | None = None,
    ) -> UpdateTemplateOutput:
        """
        Apply a live edit.

        Raises:
            ValueError: if ``changes`` is a mapping that is not a valid patch.
        """
        if isinstance(changes, TemplatePatch):
            patch = changes
        else:
            patch = TemplatePatch.model_validate(dict(changes))

        result = self._coordinator.update_template(template_id, patch, options)
        if not result.success and result.error is not None:
            logger.warning(
                "Update of %s failed (%s) after %d attempts, last version %s",
                template_id,
                result.error.kind.value,
                result.error.attempts,
                result.error.last_version,
            )
        return result

    def process_record(self, template_id: str) -> ProcessOutput:
        return self._processor.process_record(template_id)

    def process_all(self) -> BatchResult:
        return self._processor.process_many(self._store.list_ids())

    # --- Cache management ---

    def clear_cache(self, template_id: str | None = None) -> None:
        if template_id:
            self._cache.invalidate(template_id)
        else:
            self._cache.invalidate_all()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def close(self) -> None:
        """Release the cache; the service must not be used afterwards."""
        self._cache.invalidate_all()


# --- Factory ---


def build_store(
    rules: SyncRules,
    base_dir: Path,
    time_port: TimePort | None = None,
) -> TemplateStorePort:
    """Create the configured store, applying migrations for SQLite."""
    if rules.store.backend == "memory":
        return InMemoryTemplateStore(time_port=time_port)

    db_path = Path(rules.store.sqlite_path)
    if not db_path.is_absolute():
        db_path = base_dir / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)

    migrations_dir = Path(rules.store.migrations_dir)
    if not migrations_dir.is_absolute():
        migrations_dir = base_dir / migrations_dir

    SQLiteMigrator(str(db_path), str(migrations_dir)).run_migrations()
    logger.info("Template store at %s", db_path)
    return SQLiteTemplateStore(str(db_path), time_port=time_port)
