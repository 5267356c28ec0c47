"""
Persistence contract consumed by the matching core.

The core never talks to a database directly; it calls these load/save
methods. Conditional writes are compare-and-set: they return False (or 0
rows) instead of overwriting state another writer changed first.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import date
from typing import Any

from ..schemas.entities import (
    AggregateStatus,
    CCBankMatchResult,
    ExchangeRate,
    Invoice,
    LineItem,
    MatchMethod,
    Transaction,
    TransactionType,
    VendorAlias,
)


class MatchStore(ABC):
    """Load/save contract for invoices, transactions and links."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Group the calls made inside the block into one unit of work."""
        pass

    # === Invoices / line items ===

    @abstractmethod
    def get_invoice(self, invoice_id: str) -> Invoice | None:
        pass

    @abstractmethod
    def save_invoice(self, invoice: Invoice) -> None:
        pass

    @abstractmethod
    def get_line_item(self, line_item_id: str) -> LineItem | None:
        pass

    @abstractmethod
    def save_line_item(self, line_item: LineItem) -> None:
        pass

    @abstractmethod
    def list_line_items(
        self, invoice_id: str, include_document_links: bool = False
    ) -> list[LineItem]:
        pass

    @abstractmethod
    def list_unmatched_line_items(self) -> list[LineItem]:
        pass

    @abstractmethod
    def list_line_items_for_transaction(self, transaction_id: str) -> list[LineItem]:
        """Line items and document links pointing at a transaction."""
        pass

    @abstractmethod
    def set_line_item_link(
        self,
        line_item_id: str,
        transaction_id: str,
        method: MatchMethod,
        confidence: int | None,
        replace: bool = False,
    ) -> bool:
        """
        Link a line item.

        Compare-and-set: with replace=False only an unlinked row is updated,
        with replace=True only a linked one.

        Returns:
            True if the row was updated
        """
        pass

    @abstractmethod
    def clear_line_item_link(self, line_item_id: str) -> bool:
        """Unlink a linked row. Returns False if it was not linked."""
        pass

    # === Document links ===

    @abstractmethod
    def list_document_links(self, invoice_id: str) -> list[LineItem]:
        pass

    @abstractmethod
    def create_document_link(self, invoice_id: str, transaction_id: str) -> LineItem:
        pass

    @abstractmethod
    def update_document_link(self, link_id: str, transaction_id: str) -> bool:
        pass

    @abstractmethod
    def delete_document_link(self, link_id: str) -> bool:
        pass

    # === Transactions ===

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Transaction | None:
        pass

    @abstractmethod
    def save_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    def list_transactions(
        self,
        types: Iterable[TransactionType] | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        credit_card_id: str | None = None,
    ) -> list[Transaction]:
        pass

    @abstractmethod
    def list_cc_purchases_for_charge(self, bank_transaction_id: str) -> list[Transaction]:
        pass

    @abstractmethod
    def list_unattached_cc_purchases(self) -> list[Transaction]:
        pass

    @abstractmethod
    def set_parent_bank_charge(self, cc_transaction_ids: list[str], bank_transaction_id: str) -> int:
        """Attach cc rows that have no parent (or already this one). Returns rows updated."""
        pass

    @abstractmethod
    def clear_parent_bank_charge(
        self, cc_transaction_ids: list[str], bank_transaction_id: str
    ) -> int:
        """Detach cc rows currently under this charge. Returns rows updated."""
        pass

    # === Reference data ===

    @abstractmethod
    def list_vendor_aliases(self) -> list[VendorAlias]:
        pass

    @abstractmethod
    def save_vendor_alias(self, alias: VendorAlias) -> int:
        pass

    @abstractmethod
    def find_exchange_rate(
        self, currency: str, on_or_before: date, earliest: date
    ) -> ExchangeRate | None:
        """Most recent rate in [earliest, on_or_before]."""
        pass

    @abstractmethod
    def save_exchange_rate(self, rate: ExchangeRate) -> None:
        pass

    # === CC ↔ bank aggregates ===

    @abstractmethod
    def get_cc_match(self, match_id: str) -> CCBankMatchResult | None:
        pass

    @abstractmethod
    def get_cc_match_for_bank(self, bank_transaction_id: str) -> CCBankMatchResult | None:
        pass

    @abstractmethod
    def list_cc_matches(self, status: AggregateStatus | None = None) -> list[CCBankMatchResult]:
        pass

    @abstractmethod
    def save_cc_match(self, result: CCBankMatchResult) -> None:
        """Insert or update by id."""
        pass

    @abstractmethod
    def delete_cc_match(self, match_id: str) -> bool:
        pass

    @abstractmethod
    def get_stats(self) -> dict[str, Any]:
        pass
