"""
Migration 002: Daily exchange rates.

Rates are base-currency units per `unit` foreign units. Rows are imported
from an external source; matching only reads them.
"""

import sqlite3

VERSION = 2
NAME = "exchange_rates"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the exchange_rates table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS exchange_rates (
            currency TEXT NOT NULL,
            rate_date TEXT NOT NULL,
            rate REAL NOT NULL,
            unit INTEGER NOT NULL DEFAULT 1,
            fetched_at TEXT NOT NULL,

            PRIMARY KEY (currency, rate_date)
        )
        """
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the exchange_rates table."""
    conn.execute("DROP TABLE IF EXISTS exchange_rates")
