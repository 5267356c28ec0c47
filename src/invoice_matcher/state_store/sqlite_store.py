"""
SQLite-based state store implementation.

Tables:
- invoices: Invoice headers
- invoice_rows: Line items and document links (is_document_link=1)
- transactions: Bank and credit-card rows
- vendor_aliases: User vendor alias patterns (migration 001)
- exchange_rates: Daily rates to the base currency (migration 002)
- cc_bank_match_results: CC ↔ bank charge aggregates (migration 003)
"""

import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import ExternalDependencyError
from ..schemas.entities import (
    AggregateStatus,
    CCBankMatchResult,
    ExchangeRate,
    Invoice,
    LineItem,
    MatchMethod,
    MatchStatus,
    Transaction,
    TransactionType,
    VendorAlias,
    format_date,
)
from .base import MatchStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StateStore(MatchStore):
    """
    SQLite-based state store for the matching core.

    Each call runs in its own transaction unless it happens inside
    atomic(), which shares one connection (per thread) and commits once.

    Thread-safe for single-writer scenarios.
    """

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        active = getattr(self._local, "conn", None)
        if active is not None:
            # Inside atomic(): the outer block commits
            yield active
            return

        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise ExternalDependencyError(f"State store error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run several store calls as one write transaction."""
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        with self._transaction() as conn:
            conn.execute("BEGIN IMMEDIATE")
            self._local.conn = conn
            try:
                yield
            finally:
                self._local.conn = None

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS invoices (
                    id TEXT PRIMARY KEY,
                    vendor_name TEXT,
                    invoice_number TEXT,
                    invoice_date TEXT,
                    due_date TEXT,
                    total_minor INTEGER,
                    currency TEXT NOT NULL DEFAULT 'ILS',
                    is_income INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    value_date TEXT,
                    description TEXT,
                    reference TEXT,
                    amount_minor INTEGER NOT NULL,
                    foreign_currency TEXT,
                    foreign_amount_minor INTEGER,
                    transaction_type TEXT NOT NULL,  -- bank_regular, cc_purchase, bank_cc_charge
                    credit_card_id TEXT,
                    parent_bank_charge_id TEXT REFERENCES transactions(id),
                    has_vat INTEGER NOT NULL DEFAULT 0,
                    vat_percentage REAL,
                    is_income INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """
            )

            # Line items and whole-document links share one table
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS invoice_rows (
                    id TEXT PRIMARY KEY,
                    invoice_id TEXT NOT NULL REFERENCES invoices(id),
                    description TEXT,
                    total_minor INTEGER NOT NULL DEFAULT 0,
                    currency TEXT NOT NULL DEFAULT 'ILS',
                    transaction_date TEXT,
                    reference TEXT,
                    is_document_link INTEGER NOT NULL DEFAULT 0,
                    transaction_id TEXT REFERENCES transactions(id),
                    match_status TEXT NOT NULL DEFAULT 'unmatched',
                    match_confidence INTEGER,
                    match_method TEXT,
                    matched_at TEXT,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute("CREATE INDEX IF NOT EXISTS idx_rows_invoice ON invoice_rows(invoice_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_rows_transaction ON invoice_rows(transaction_id)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tx_date ON transactions(date)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tx_parent ON transactions(parent_bank_charge_id)"
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # === Invoices ===

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        """Get an invoice by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
            return Invoice.from_row(row) if row else None

    def save_invoice(self, invoice: Invoice) -> None:
        """Insert or update an invoice."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO invoices
                (id, vendor_name, invoice_number, invoice_date, due_date, total_minor,
                 currency, is_income, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    vendor_name = excluded.vendor_name,
                    invoice_number = excluded.invoice_number,
                    invoice_date = excluded.invoice_date,
                    due_date = excluded.due_date,
                    total_minor = excluded.total_minor,
                    currency = excluded.currency,
                    is_income = excluded.is_income
            """,
                (
                    invoice.id,
                    invoice.vendor_name,
                    invoice.invoice_number,
                    format_date(invoice.invoice_date),
                    format_date(invoice.due_date),
                    invoice.total_minor,
                    invoice.currency,
                    int(invoice.is_income),
                    _now(),
                ),
            )

    # === Line items ===

    def get_line_item(self, line_item_id: str) -> LineItem | None:
        """Get a line item (or document link row) by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM invoice_rows WHERE id = ?", (line_item_id,)
            ).fetchone()
            return LineItem.from_row(row) if row else None

    def save_line_item(self, line_item: LineItem) -> None:
        """Insert or update a line item, including its link columns."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO invoice_rows
                (id, invoice_id, description, total_minor, currency, transaction_date,
                 reference, is_document_link, transaction_id, match_status,
                 match_confidence, match_method, matched_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    invoice_id = excluded.invoice_id,
                    description = excluded.description,
                    total_minor = excluded.total_minor,
                    currency = excluded.currency,
                    transaction_date = excluded.transaction_date,
                    reference = excluded.reference,
                    is_document_link = excluded.is_document_link,
                    transaction_id = excluded.transaction_id,
                    match_status = excluded.match_status,
                    match_confidence = excluded.match_confidence,
                    match_method = excluded.match_method,
                    matched_at = excluded.matched_at
            """,
                (
                    line_item.id,
                    line_item.invoice_id,
                    line_item.description,
                    line_item.total_minor,
                    line_item.currency,
                    format_date(line_item.transaction_date),
                    line_item.reference,
                    int(line_item.is_document_link),
                    line_item.transaction_id,
                    line_item.match_status.value,
                    line_item.match_confidence,
                    line_item.match_method.value if line_item.match_method else None,
                    line_item.matched_at,
                    _now(),
                ),
            )

    def list_line_items(
        self, invoice_id: str, include_document_links: bool = False
    ) -> list[LineItem]:
        """Line items of an invoice, in insertion order."""
        query = "SELECT * FROM invoice_rows WHERE invoice_id = ?"
        if not include_document_links:
            query += " AND is_document_link = 0"
        query += " ORDER BY created_at, id"
        with self._transaction() as conn:
            rows = conn.execute(query, (invoice_id,)).fetchall()
            return [LineItem.from_row(row) for row in rows]

    def list_unmatched_line_items(self) -> list[LineItem]:
        """All unlinked line items across invoices."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM invoice_rows
                WHERE transaction_id IS NULL AND is_document_link = 0
                ORDER BY created_at, id
            """
            ).fetchall()
            return [LineItem.from_row(row) for row in rows]

    def list_line_items_for_transaction(self, transaction_id: str) -> list[LineItem]:
        """Line items and document links pointing at a transaction."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM invoice_rows WHERE transaction_id = ? ORDER BY matched_at, id",
                (transaction_id,),
            ).fetchall()
            return [LineItem.from_row(row) for row in rows]

    def set_line_item_link(
        self,
        line_item_id: str,
        transaction_id: str,
        method: MatchMethod,
        confidence: int | None,
        replace: bool = False,
    ) -> bool:
        """Compare-and-set link update on a non-document row."""
        guard = "transaction_id IS NOT NULL" if replace else "transaction_id IS NULL"
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE invoice_rows
                SET transaction_id = ?, match_status = ?, match_method = ?,
                    match_confidence = ?, matched_at = ?
                WHERE id = ? AND is_document_link = 0 AND {guard}
            """,
                (
                    transaction_id,
                    MatchStatus.MATCHED.value,
                    method.value,
                    confidence,
                    _now(),
                    line_item_id,
                ),
            )
            return cursor.rowcount > 0

    def clear_line_item_link(self, line_item_id: str) -> bool:
        """Clear every link column together."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE invoice_rows
                SET transaction_id = NULL, match_status = ?, match_method = NULL,
                    match_confidence = NULL, matched_at = NULL
                WHERE id = ? AND is_document_link = 0 AND transaction_id IS NOT NULL
            """,
                (MatchStatus.UNMATCHED.value, line_item_id),
            )
            return cursor.rowcount > 0

    # === Document links ===

    def list_document_links(self, invoice_id: str) -> list[LineItem]:
        """Whole-document links of an invoice."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM invoice_rows
                WHERE invoice_id = ? AND is_document_link = 1
                ORDER BY created_at, id
            """,
                (invoice_id,),
            ).fetchall()
            return [LineItem.from_row(row) for row in rows]

    def create_document_link(self, invoice_id: str, transaction_id: str) -> LineItem:
        """Insert a new document link row."""
        now = _now()
        link = LineItem(
            id=uuid.uuid4().hex,
            invoice_id=invoice_id,
            description="Document link",
            is_document_link=True,
            transaction_id=transaction_id,
            match_status=MatchStatus.MATCHED,
            match_method=MatchMethod.MANUAL,
            matched_at=now,
        )
        self.save_line_item(link)
        return link

    def update_document_link(self, link_id: str, transaction_id: str) -> bool:
        """Point a document link at another transaction."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE invoice_rows SET transaction_id = ?, matched_at = ?
                WHERE id = ? AND is_document_link = 1
            """,
                (transaction_id, _now(), link_id),
            )
            return cursor.rowcount > 0

    def delete_document_link(self, link_id: str) -> bool:
        """Delete a document link row."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM invoice_rows WHERE id = ? AND is_document_link = 1", (link_id,)
            )
            return cursor.rowcount > 0

    # === Transactions ===

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        """Get a transaction by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
            return Transaction.from_row(row) if row else None

    def save_transaction(self, transaction: Transaction) -> None:
        """Insert or update a transaction."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO transactions
                (id, date, value_date, description, reference, amount_minor,
                 foreign_currency, foreign_amount_minor, transaction_type, credit_card_id,
                 parent_bank_charge_id, has_vat, vat_percentage, is_income, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    date = excluded.date,
                    value_date = excluded.value_date,
                    description = excluded.description,
                    reference = excluded.reference,
                    amount_minor = excluded.amount_minor,
                    foreign_currency = excluded.foreign_currency,
                    foreign_amount_minor = excluded.foreign_amount_minor,
                    transaction_type = excluded.transaction_type,
                    credit_card_id = excluded.credit_card_id,
                    parent_bank_charge_id = excluded.parent_bank_charge_id,
                    has_vat = excluded.has_vat,
                    vat_percentage = excluded.vat_percentage,
                    is_income = excluded.is_income
            """,
                (
                    transaction.id,
                    format_date(transaction.date),
                    format_date(transaction.value_date),
                    transaction.description,
                    transaction.reference,
                    transaction.amount_minor,
                    transaction.foreign_currency,
                    transaction.foreign_amount_minor,
                    transaction.transaction_type.value,
                    transaction.credit_card_id,
                    transaction.parent_bank_charge_id,
                    int(transaction.has_vat),
                    transaction.vat_percentage,
                    int(transaction.is_income),
                    _now(),
                ),
            )

    def list_transactions(
        self,
        types: Iterable[TransactionType] | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        credit_card_id: str | None = None,
    ) -> list[Transaction]:
        """Transactions filtered by type, inclusive date range and card.

        The date range matches when either the booking date or the value
        date falls inside it.
        """
        clauses: list[str] = []
        params: list[Any] = []
        if types is not None:
            type_values = [t.value for t in types]
            if not type_values:
                return []
            clauses.append(f"transaction_type IN ({', '.join('?' for _ in type_values)})")
            params.extend(type_values)
        if date_from is not None or date_to is not None:
            bounds: list[str] = []
            bound_params: list[str] = []
            if date_from is not None:
                bounds.append("{col} >= ?")
                bound_params.append(format_date(date_from))
            if date_to is not None:
                bounds.append("{col} <= ?")
                bound_params.append(format_date(date_to))
            per_column = " AND ".join(bounds)
            clauses.append(
                f"(({per_column.format(col='date')}) OR ({per_column.format(col='value_date')}))"
            )
            params.extend(bound_params * 2)
        if credit_card_id is not None:
            clauses.append("credit_card_id = ?")
            params.append(credit_card_id)

        query = "SELECT * FROM transactions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY date, id"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [Transaction.from_row(row) for row in rows]

    def list_cc_purchases_for_charge(self, bank_transaction_id: str) -> list[Transaction]:
        """Card purchases currently attached to a bank charge."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions
                WHERE parent_bank_charge_id = ? AND transaction_type = ?
                ORDER BY date, id
            """,
                (bank_transaction_id, TransactionType.CC_PURCHASE.value),
            ).fetchall()
            return [Transaction.from_row(row) for row in rows]

    def list_unattached_cc_purchases(self) -> list[Transaction]:
        """Card purchases not yet attached to any bank charge."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions
                WHERE parent_bank_charge_id IS NULL AND transaction_type = ?
                ORDER BY date, id
            """,
                (TransactionType.CC_PURCHASE.value,),
            ).fetchall()
            return [Transaction.from_row(row) for row in rows]

    def set_parent_bank_charge(self, cc_transaction_ids: list[str], bank_transaction_id: str) -> int:
        """Attach card rows that are free or already under this charge."""
        if not cc_transaction_ids:
            return 0
        placeholders = ", ".join("?" for _ in cc_transaction_ids)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE transactions SET parent_bank_charge_id = ?
                WHERE id IN ({placeholders})
                  AND transaction_type = ?
                  AND (parent_bank_charge_id IS NULL OR parent_bank_charge_id = ?)
            """,
                (
                    bank_transaction_id,
                    *cc_transaction_ids,
                    TransactionType.CC_PURCHASE.value,
                    bank_transaction_id,
                ),
            )
            return cursor.rowcount

    def clear_parent_bank_charge(
        self, cc_transaction_ids: list[str], bank_transaction_id: str
    ) -> int:
        """Detach card rows currently under this charge."""
        if not cc_transaction_ids:
            return 0
        placeholders = ", ".join("?" for _ in cc_transaction_ids)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE transactions SET parent_bank_charge_id = NULL
                WHERE id IN ({placeholders}) AND parent_bank_charge_id = ?
            """,
                (*cc_transaction_ids, bank_transaction_id),
            )
            return cursor.rowcount

    # === Reference data ===

    def list_vendor_aliases(self) -> list[VendorAlias]:
        """All vendor aliases, highest priority first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM vendor_aliases ORDER BY priority DESC, id"
            ).fetchall()
            return [VendorAlias.from_row(row) for row in rows]

    def save_vendor_alias(self, alias: VendorAlias) -> int:
        """Insert or update a vendor alias (unique per pattern + match type)."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO vendor_aliases
                (alias_pattern, canonical_name, match_type, priority, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(alias_pattern, match_type) DO UPDATE SET
                    canonical_name = excluded.canonical_name,
                    priority = excluded.priority,
                    source = excluded.source
            """,
                (
                    alias.alias_pattern,
                    alias.canonical_name,
                    alias.match_type.value,
                    alias.priority,
                    alias.source,
                    _now(),
                ),
            )
            row = conn.execute(
                "SELECT id FROM vendor_aliases WHERE alias_pattern = ? AND match_type = ?",
                (alias.alias_pattern, alias.match_type.value),
            ).fetchone()
            return row["id"]

    def find_exchange_rate(
        self, currency: str, on_or_before: date, earliest: date
    ) -> ExchangeRate | None:
        """Most recent stored rate in [earliest, on_or_before]."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM exchange_rates
                WHERE currency = ? AND rate_date <= ? AND rate_date >= ?
                ORDER BY rate_date DESC
                LIMIT 1
            """,
                (currency.upper(), format_date(on_or_before), format_date(earliest)),
            ).fetchone()
            return ExchangeRate.from_row(row) if row else None

    def save_exchange_rate(self, rate: ExchangeRate) -> None:
        """Insert or update a daily rate."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO exchange_rates (currency, rate_date, rate, unit, fetched_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(currency, rate_date) DO UPDATE SET
                    rate = excluded.rate,
                    unit = excluded.unit,
                    fetched_at = excluded.fetched_at
            """,
                (rate.currency.upper(), format_date(rate.rate_date), rate.rate, rate.unit, _now()),
            )

    # === CC ↔ bank aggregates ===

    def get_cc_match(self, match_id: str) -> CCBankMatchResult | None:
        """Get an aggregate by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM cc_bank_match_results WHERE id = ?", (match_id,)
            ).fetchone()
            return CCBankMatchResult.from_row(row) if row else None

    def get_cc_match_for_bank(self, bank_transaction_id: str) -> CCBankMatchResult | None:
        """Get the aggregate of a bank charge."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM cc_bank_match_results WHERE bank_transaction_id = ?",
                (bank_transaction_id,),
            ).fetchone()
            return CCBankMatchResult.from_row(row) if row else None

    def list_cc_matches(self, status: AggregateStatus | None = None) -> list[CCBankMatchResult]:
        """Aggregates, newest charge first."""
        query = "SELECT * FROM cc_bank_match_results"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        query += " ORDER BY charge_date DESC, id"
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [CCBankMatchResult.from_row(row) for row in rows]

    def save_cc_match(self, result: CCBankMatchResult) -> None:
        """Insert or update an aggregate."""
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO cc_bank_match_results
                (id, bank_transaction_id, credit_card_id, charge_date, bank_amount_minor,
                 total_cc_amount_minor, cc_transaction_count, discrepancy_minor,
                 discrepancy_percent, match_confidence, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    credit_card_id = excluded.credit_card_id,
                    charge_date = excluded.charge_date,
                    bank_amount_minor = excluded.bank_amount_minor,
                    total_cc_amount_minor = excluded.total_cc_amount_minor,
                    cc_transaction_count = excluded.cc_transaction_count,
                    discrepancy_minor = excluded.discrepancy_minor,
                    discrepancy_percent = excluded.discrepancy_percent,
                    match_confidence = excluded.match_confidence,
                    status = excluded.status,
                    updated_at = excluded.updated_at
            """,
                (
                    result.id,
                    result.bank_transaction_id,
                    result.credit_card_id,
                    format_date(result.charge_date),
                    result.bank_amount_minor,
                    result.total_cc_amount_minor,
                    result.cc_transaction_count,
                    result.discrepancy_minor,
                    result.discrepancy_percent,
                    result.match_confidence,
                    result.status.value,
                    result.created_at or now,
                    now,
                ),
            )
        result.created_at = result.created_at or now
        result.updated_at = now

    def delete_cc_match(self, match_id: str) -> bool:
        """Delete an aggregate."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM cc_bank_match_results WHERE id = ?", (match_id,))
            return cursor.rowcount > 0

    # Statistics

    def get_stats(self) -> dict[str, Any]:
        """Get matching statistics."""
        with self._transaction() as conn:
            invoices = conn.execute("SELECT COUNT(*) as count FROM invoices").fetchone()
            line_items = conn.execute(
                "SELECT COUNT(*) as count FROM invoice_rows WHERE is_document_link = 0"
            ).fetchone()
            matched = conn.execute(
                """
                SELECT COUNT(*) as count FROM invoice_rows
                WHERE is_document_link = 0 AND transaction_id IS NOT NULL
            """
            ).fetchone()
            doc_links = conn.execute(
                "SELECT COUNT(*) as count FROM invoice_rows WHERE is_document_link = 1"
            ).fetchone()
            transactions = conn.execute("SELECT COUNT(*) as count FROM transactions").fetchone()
            cc_matches = conn.execute(
                "SELECT COUNT(*) as count FROM cc_bank_match_results"
            ).fetchone()
            cc_pending = conn.execute(
                "SELECT COUNT(*) as count FROM cc_bank_match_results WHERE status = ?",
                (AggregateStatus.PENDING.value,),
            ).fetchone()

            return {
                "invoices_total": invoices["count"] if invoices else 0,
                "line_items_total": line_items["count"] if line_items else 0,
                "line_items_matched": matched["count"] if matched else 0,
                "document_links": doc_links["count"] if doc_links else 0,
                "transactions_total": transactions["count"] if transactions else 0,
                "cc_matches_total": cc_matches["count"] if cc_matches else 0,
                "cc_matches_pending": cc_pending["count"] if cc_pending else 0,
            }
