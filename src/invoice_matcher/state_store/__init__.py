"""
State Store (SQLite-based).

Persistent storage for invoices, line items, transactions, vendor aliases,
exchange rates and CC ↔ bank aggregates. The matching core depends only on
the MatchStore contract; StateStore is its SQLite implementation.
"""

from .base import MatchStore
from .sqlite_store import StateStore

__all__ = [
    "MatchStore",
    "StateStore",
]
