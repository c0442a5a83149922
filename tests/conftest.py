from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from template_sync.adapters.memory_store import InMemoryTemplateStore
from template_sync.adapters.sqlite.migrator import SQLiteMigrator
from template_sync.adapters.sqlite.store import SQLiteTemplateStore
from template_sync.domain.entities import FieldDefinition, Template, TemplateSection

PROJECT_ROOT = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"

T0 = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@dataclass
class MockTimePort:
    """Deterministic clock; sleep advances time instead of blocking."""

    current_time: datetime = T0
    elapsed: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def now_utc(self) -> datetime:
        return self.current_time

    def monotonic(self) -> float:
        return self.elapsed

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance_seconds(seconds)

    def advance(self, ms: float) -> None:
        """Advance time for testing."""
        self.advance_seconds(ms / 1000)

    def advance_seconds(self, seconds: float) -> None:
        self.current_time += timedelta(seconds=seconds)
        self.elapsed += seconds


def make_template(
    template_id: str = "t1",
    version: str = "v1",
    last_user_update: datetime | None = None,
    **overrides,
) -> Template:
    data = {
        "id": template_id,
        "name": "Original",
        "description": None,
        "organization_id": "org-1",
        "sections": [
            TemplateSection(id="s1", title="Exterior", fields=["roof", "walls"], order=0)
        ],
        "field_definitions": {
            "roof": FieldDefinition(id="roof", type="select", label="Roof", options=["ok", "bad"]),
            "walls": FieldDefinition(id="walls", type="text", label="Walls", required=True),
        },
        "version": version,
        "updated_at": T0,
        "last_user_update": last_user_update,
    }
    data.update(overrides)
    return Template(**data)


@pytest.fixture
def clock() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def memory_store(clock: MockTimePort) -> InMemoryTemplateStore:
    """In-memory store seeded with t1 (version v1, never edited)."""
    store = InMemoryTemplateStore(time_port=clock)
    store.create(make_template())
    return store


@pytest.fixture
def sqlite_db(tmp_path: Path) -> str:
    """Path to a migrated, empty SQLite database."""
    db_path = str(tmp_path / "templates.db")
    SQLiteMigrator(db_path, str(MIGRATIONS_DIR)).run_migrations()
    return db_path


@pytest.fixture
def sqlite_store(sqlite_db: str, clock: MockTimePort) -> SQLiteTemplateStore:
    store = SQLiteTemplateStore(sqlite_db, time_port=clock)
    store.create(make_template())
    return store


@pytest.fixture
def template_factory():
    """Builds seeded templates; keyword overrides replace fields."""
    return make_template
