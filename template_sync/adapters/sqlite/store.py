"""
SQLite Template Store Adapter.

Conditional writes run inside a ``BEGIN IMMEDIATE`` transaction and are
guarded by ``WHERE id = ? AND version = ?``; a rowcount of zero means the
version moved underneath us. Driver errors surface as StoreFailure on
write and StoreError on read.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any

from template_sync.adapters.clock import SystemClock
from template_sync.core.ports.store import (
    Committed,
    NotFound,
    StoreError,
    StoreFailure,
    VersionConflict,
    WriteResult,
)
from template_sync.core.ports.time import TimePort
from template_sync.domain.entities import Template
from template_sync.domain.versioning import next_version

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, name, description, organization_id, sections_json, field_definitions_json, "
    "inspection_variants_json, update_count, version, updated_at, last_user_update, "
    "processed_at"
)


# Helper to convert sqlite rows to dicts
def dict_factory(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
    d = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def row_to_template(row: dict[str, Any]) -> Template:
    return Template.model_validate(
        {
            "id": row["id"],
            "name": row["name"],
            "description": row["description"],
            "organization_id": row["organization_id"],
            "sections": json.loads(row["sections_json"]),
            "field_definitions": json.loads(row["field_definitions_json"]),
            "inspection_variants": json.loads(row["inspection_variants_json"]),
            "update_count": row["update_count"],
            "version": row["version"],
            "updated_at": _parse_dt(row["updated_at"]),
            "last_user_update": _parse_dt(row["last_user_update"]),
            "processed_at": _parse_dt(row["processed_at"]),
        }
    )


def template_to_params(template: Template) -> tuple[Any, ...]:
    data = template.model_dump(mode="json")
    return (
        template.id,
        template.name,
        template.description,
        template.organization_id,
        json.dumps(data["sections"]),
        json.dumps(data["field_definitions"]),
        json.dumps(data["inspection_variants"]),
        template.update_count,
        template.version,
        _iso(template.updated_at),
        _iso(template.last_user_update),
        _iso(template.processed_at),
    )


class SQLiteTemplateStore:
    """Implements TemplateStorePort on the template_library table."""

    def __init__(
        self,
        db_path: str,
        time_port: TimePort | None = None,
        busy_timeout_seconds: float = 5.0,
    ):
        self.db_path = db_path
        self._time = time_port or SystemClock()
        self._busy_timeout = busy_timeout_seconds

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly
        conn = sqlite3.connect(
            self.db_path, timeout=self._busy_timeout, isolation_level=None
        )
        conn.row_factory = dict_factory
        return conn

    def read(self, template_id: str) -> Template | None:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open store at {self.db_path}", cause=e) from e
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM template_library WHERE id = ?", (template_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read template {template_id}", cause=e) from e
        finally:
            conn.close()
        return row_to_template(row) if row else None

    def conditional_write(
        self,
        template_id: str,
        changes: dict[str, Any],
        expected_version: str,
    ) -> WriteResult:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            return StoreFailure(message=f"Cannot open store at {self.db_path}", cause=e)

        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM template_library WHERE id = ?", (template_id,)
            ).fetchone()
            if row is None:
                conn.rollback()
                return NotFound(template_id=template_id)

            current = row_to_template(row)
            if current.version != expected_version:
                conn.rollback()
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
                conn.rollback()
                return StoreFailure(message=f"Invalid changes for {template_id}", cause=e)

            params = template_to_params(updated)
            cursor = conn.execute(
                """
                UPDATE template_library SET
                    name = ?,
                    description = ?,
                    organization_id = ?,
                    sections_json = ?,
                    field_definitions_json = ?,
                    inspection_variants_json = ?,
                    update_count = ?,
                    version = ?,
                    updated_at = ?,
                    last_user_update = ?,
                    processed_at = ?
                WHERE id = ? AND version = ?
                """,
                (*params[1:], template_id, expected_version),
            )

            if cursor.rowcount == 0:
                # Version changed between check and update
                conn.rollback()
                return VersionConflict(expected_version=expected_version)

            conn.commit()
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error("Conditional write on %s failed: %s", template_id, e)
            return StoreFailure(message=f"Failed to write template {template_id}", cause=e)
        finally:
            conn.close()

        return Committed(template=updated)

    def create(self, template: Template) -> Template:
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO template_library ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                template_to_params(template),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Template {template.id} already exists") from e
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create template {template.id}", cause=e) from e
        finally:
            conn.close()
        return template

    def list_ids(self) -> list[str]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT id FROM template_library ORDER BY id").fetchall()
        except sqlite3.Error as e:
            raise StoreError("Failed to list templates", cause=e) from e
        finally:
            conn.close()
        return [r["id"] for r in rows]
