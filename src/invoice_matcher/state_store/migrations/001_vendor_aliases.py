"""
Migration 001: Vendor alias patterns.

Maps bank description patterns to canonical vendor names. Higher priority
aliases are tried first.
"""

import sqlite3

VERSION = 1
NAME = "vendor_aliases"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the vendor_aliases table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS vendor_aliases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            alias_pattern TEXT NOT NULL,
            canonical_name TEXT NOT NULL,
            match_type TEXT NOT NULL DEFAULT 'contains',  -- exact, contains, starts_with, ends_with
            priority INTEGER NOT NULL DEFAULT 0,
            source TEXT NOT NULL DEFAULT 'user',  -- user, learned, system
            created_at TEXT NOT NULL,

            UNIQUE(alias_pattern, match_type)
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_vendor_aliases_priority ON vendor_aliases(priority)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the vendor_aliases table."""
    conn.execute("DROP INDEX IF EXISTS idx_vendor_aliases_priority")
    conn.execute("DROP TABLE IF EXISTS vendor_aliases")
