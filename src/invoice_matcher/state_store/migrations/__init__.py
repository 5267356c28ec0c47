"""
Versioned migrations for the SQLite state store.

Core tables are created by the store itself; reference data and aggregate
tables are added here and tracked in the `migrations` table.
"""

from .runner import Migration, MigrationRunner, get_all_migrations

__all__ = ["Migration", "MigrationRunner", "get_all_migrations"]
