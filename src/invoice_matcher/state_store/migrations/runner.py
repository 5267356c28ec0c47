"""
Migration runner for versioned state store schema changes.

Migration modules live next to this file and are named {version}_{name}.py
(001_vendor_aliases.py, ...). Each defines:
- VERSION: int
- NAME: str
- upgrade(conn: Connection) -> None
- downgrade(conn: Connection) -> None  # optional
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class Migration:
    """A single schema migration."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None] | None


def get_all_migrations() -> list[Migration]:
    """Load every migration module in this package, ordered by version."""
    migrations = []
    for py_file in sorted(Path(__file__).parent.glob("[0-9][0-9][0-9]_*.py")):
        module = importlib.import_module(f"{__package__}.{py_file.stem}")
        migrations.append(
            Migration(
                version=module.VERSION,
                name=module.NAME,
                upgrade=module.upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        )

    versions = [m.version for m in migrations]
    if len(versions) != len(set(versions)):
        raise ValueError(f"Duplicate migration versions: {versions}")
    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """
    Applies migrations in version order.

    Applied versions are recorded in the `migrations` table.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    def get_applied_versions(self) -> set[int]:
        """Versions already applied."""
        return {row[0] for row in self.conn.execute("SELECT version FROM migrations")}

    def get_current_version(self) -> int:
        """Highest applied version (0 for a fresh database)."""
        result = self.conn.execute("SELECT MAX(version) FROM migrations").fetchone()[0]
        return result if result is not None else 0

    def pending(self) -> list[Migration]:
        """Migrations not yet applied."""
        applied = self.get_applied_versions()
        return [m for m in get_all_migrations() if m.version not in applied]

    def apply_migration(self, migration: Migration) -> None:
        """Apply one migration and record it; roll back on failure."""
        logger.info("Applying migration %03d: %s", migration.version, migration.name)
        try:
            migration.upgrade(self.conn)
            self.conn.execute(
                "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (
                    migration.version,
                    migration.name,
                    datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                ),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("Migration %03d failed: %s", migration.version, e)
            raise

    def rollback_migration(self, migration: Migration) -> None:
        """Undo one migration and drop its record."""
        if migration.downgrade is None:
            raise NotImplementedError(
                f"Migration {migration.version} ({migration.name}) does not support rollback"
            )

        logger.info("Rolling back migration %03d: %s", migration.version, migration.name)
        try:
            migration.downgrade(self.conn)
            self.conn.execute("DELETE FROM migrations WHERE version = ?", (migration.version,))
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("Rollback of migration %03d failed: %s", migration.version, e)
            raise

    def run_pending(self) -> list[int]:
        """Apply all pending migrations; returns the applied versions."""
        applied_versions = []
        for migration in self.pending():
            self.apply_migration(migration)
            applied_versions.append(migration.version)

        if applied_versions:
            logger.info("Applied %d migration(s): %s", len(applied_versions), applied_versions)
        return applied_versions

    def migrate_to(self, target_version: int) -> None:
        """Upgrade or downgrade to an exact version."""
        current = self.get_current_version()
        by_version = {m.version: m for m in get_all_migrations()}

        if target_version > current:
            for version in range(current + 1, target_version + 1):
                if version in by_version:
                    self.apply_migration(by_version[version])
        elif target_version < current:
            for version in range(current, target_version, -1):
                if version in by_version:
                    self.rollback_migration(by_version[version])
