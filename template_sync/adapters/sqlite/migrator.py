"""
SQLite schema migrator.

Each ``*.sql`` file in the migrations directory is applied once, in
filename order, and recorded in ``_migrations``. Only the part above a
``-- Down`` marker is executed.
"""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

_DOWN_MARKER = "-- Down"


class SQLiteMigrator:
    def __init__(self, db_path: str, migrations_dir: str):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def pending(self) -> list[str]:
        """Filenames not yet recorded as applied."""
        conn = sqlite3.connect(self.db_path)
        try:
            self._ensure_ledger(conn)
            done = self._applied(conn)
        finally:
            conn.close()
        return [name for name in self._available() if name not in done]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations. Returns the filenames applied."""
        conn = sqlite3.connect(self.db_path)
        applied_now: list[str] = []
        try:
            self._ensure_ledger(conn)
            done = self._applied(conn)
            for name in self._available():
                if name in done:
                    continue
                logger.info("Applying migration %s to %s", name, self.db_path)
                self._apply(conn, name)
                applied_now.append(name)
        finally:
            conn.close()

        if not applied_now:
            logger.debug("Schema at %s is up to date", self.db_path)
        return applied_now

    def _available(self) -> list[str]:
        return sorted(p.name for p in self.migrations_dir.glob("*.sql"))

    @staticmethod
    def _ensure_ledger(conn: sqlite3.Connection) -> None:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS _migrations ("
            " filename TEXT PRIMARY KEY,"
            " applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP)"
        )

    @staticmethod
    def _applied(conn: sqlite3.Connection) -> set[str]:
        return {row[0] for row in conn.execute("SELECT filename FROM _migrations")}

    def _apply(self, conn: sqlite3.Connection, name: str) -> None:
        up_script, _, _ = (self.migrations_dir / name).read_text().partition(_DOWN_MARKER)
        try:
            conn.executescript(up_script)
            conn.execute("INSERT INTO _migrations (filename) VALUES (?)", (name,))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RuntimeError(f"Migration {name} failed: {e}") from e
