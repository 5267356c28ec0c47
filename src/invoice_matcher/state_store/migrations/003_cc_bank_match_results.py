"""
Migration 003: Credit card ↔ bank charge aggregates.

One row per bank_cc_charge transaction. Totals are recomputed from the
attached cc_purchase rows on every attach/unmatch.
"""

import sqlite3

VERSION = 3
NAME = "cc_bank_match_results"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the cc_bank_match_results table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cc_bank_match_results (
            id TEXT PRIMARY KEY,
            bank_transaction_id TEXT NOT NULL REFERENCES transactions(id),
            credit_card_id TEXT,
            charge_date TEXT,
            bank_amount_minor INTEGER NOT NULL,
            total_cc_amount_minor INTEGER NOT NULL DEFAULT 0,
            cc_transaction_count INTEGER NOT NULL DEFAULT 0,
            discrepancy_minor INTEGER NOT NULL DEFAULT 0,
            discrepancy_percent REAL NOT NULL DEFAULT 0,
            match_confidence INTEGER,
            status TEXT NOT NULL DEFAULT 'pending',  -- pending, approved, rejected
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,

            UNIQUE(bank_transaction_id)  -- One aggregate per bank charge
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_cc_bank_status ON cc_bank_match_results(status)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the cc_bank_match_results table."""
    conn.execute("DROP INDEX IF EXISTS idx_cc_bank_status")
    conn.execute("DROP TABLE IF EXISTS cc_bank_match_results")
