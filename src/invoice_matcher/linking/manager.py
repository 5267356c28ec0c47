"""
Link state machine for invoice line items.

    unmatched --link--> matched(method) --unlink--> unmatched
                            |
                         replace (stays matched, new transaction)

Link operations never raise: every call returns a LinkResult carrying either
success or a single human-readable error with its category. Writes are
compare-and-set, so a concurrent writer that got there first surfaces as a
conflict instead of being overwritten.

Document links (whole-invoice ↔ transaction) are separate rows with their
own add/replace/remove operations and no one-link limit.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import (
    ConflictError,
    ExternalDependencyError,
    MatchingError,
    NotFoundError,
    ValidationError,
    require_id,
)
from ..schemas.entities import (
    LINKABLE_TRANSACTION_TYPES,
    LineItem,
    MatchMethod,
    MatchStatus,
    Transaction,
)
from ..state_store.base import MatchStore

logger = logging.getLogger(__name__)


class LinkErrorType:
    """Error categories reported on a failed LinkResult."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXTERNAL = "external"


def _error_type(error: Exception) -> str:
    if isinstance(error, ConflictError):
        return LinkErrorType.CONFLICT
    if isinstance(error, ValidationError):
        return LinkErrorType.VALIDATION
    if isinstance(error, NotFoundError):
        return LinkErrorType.NOT_FOUND
    return LinkErrorType.EXTERNAL


@dataclass
class LinkResult:
    """Outcome of a link operation."""

    success: bool
    line_item_id: str | None = None
    transaction_id: str | None = None
    error: str | None = None
    error_type: str | None = None

    @classmethod
    def ok(cls, line_item_id: str, transaction_id: str | None = None) -> "LinkResult":
        return cls(success=True, line_item_id=line_item_id, transaction_id=transaction_id)

    @classmethod
    def fail(
        cls, error: Exception, line_item_id: str | None = None, transaction_id: str | None = None
    ) -> "LinkResult":
        return cls(
            success=False,
            line_item_id=line_item_id,
            transaction_id=transaction_id,
            error=str(error),
            error_type=_error_type(error),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "line_item_id": self.line_item_id,
            "transaction_id": self.transaction_id,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class TransactionLinkSummary:
    """How much of a transaction is covered by linked line items."""

    transaction_id: str
    transaction_amount_minor: int
    linked_count: int
    total_allocated_minor: int
    remaining_minor: int
    document_link_count: int = 0
    line_item_ids: list[str] = field(default_factory=list)

    @property
    def is_fully_allocated(self) -> bool:
        return self.linked_count > 0 and self.remaining_minor <= 0


class LinkManager:
    """Creates, replaces and removes line item ↔ transaction links."""

    def __init__(self, store: MatchStore):
        self.store = store

    # === Line item links ===

    def link(
        self,
        line_item_id: str,
        transaction_id: str,
        method: MatchMethod = MatchMethod.MANUAL,
        confidence: int | None = None,
    ) -> LinkResult:
        """Link an unmatched line item to a transaction."""
        try:
            line_item_id = require_id(line_item_id, "line_item_id")
            transaction_id = require_id(transaction_id, "transaction_id")
            item = self._load_line_item(line_item_id)
            if item.is_linked:
                raise ConflictError(
                    f"Line item {line_item_id} is already linked to transaction "
                    f"{item.transaction_id}; use replace to change it"
                )
            self._load_linkable_transaction(transaction_id)

            if not self.store.set_line_item_link(
                line_item_id, transaction_id, method, confidence, replace=False
            ):
                raise ConflictError(f"Line item {line_item_id} was linked by another change")
        except MatchingError as e:
            logger.warning("Link %s -> %s failed: %s", line_item_id, transaction_id, e)
            return LinkResult.fail(e, line_item_id, transaction_id)

        logger.info(
            "Linked line item %s -> transaction %s (%s, confidence=%s)",
            line_item_id,
            transaction_id,
            method.value,
            confidence,
        )
        return LinkResult.ok(line_item_id, transaction_id)

    def replace(
        self,
        line_item_id: str,
        transaction_id: str,
        method: MatchMethod = MatchMethod.MANUAL,
        confidence: int | None = None,
    ) -> LinkResult:
        """Point an already matched line item at a different transaction."""
        try:
            line_item_id = require_id(line_item_id, "line_item_id")
            transaction_id = require_id(transaction_id, "transaction_id")
            item = self._load_line_item(line_item_id)
            if not item.is_linked:
                raise ValidationError(
                    f"Line item {line_item_id} is not linked; use link instead"
                )
            self._load_linkable_transaction(transaction_id)

            if not self.store.set_line_item_link(
                line_item_id, transaction_id, method, confidence, replace=True
            ):
                raise ConflictError(f"Line item {line_item_id} was unlinked by another change")
        except MatchingError as e:
            logger.warning("Replace %s -> %s failed: %s", line_item_id, transaction_id, e)
            return LinkResult.fail(e, line_item_id, transaction_id)

        logger.info(
            "Replaced link of line item %s: %s -> %s",
            line_item_id,
            item.transaction_id,
            transaction_id,
        )
        return LinkResult.ok(line_item_id, transaction_id)

    def unlink(self, line_item_id: str) -> LinkResult:
        """Clear a line item's link and all link metadata."""
        try:
            line_item_id = require_id(line_item_id, "line_item_id")
            item = self._load_line_item(line_item_id)
            if not item.is_linked:
                raise ValidationError(f"Line item {line_item_id} is not linked")
            if not self.store.clear_line_item_link(line_item_id):
                raise ConflictError(f"Line item {line_item_id} was unlinked by another change")
        except MatchingError as e:
            logger.warning("Unlink %s failed: %s", line_item_id, e)
            return LinkResult.fail(e, line_item_id)

        logger.info("Unlinked line item %s from transaction %s", line_item_id, item.transaction_id)
        return LinkResult.ok(line_item_id)

    # === Document links ===

    def create_document_link(self, invoice_id: str, transaction_id: str) -> LinkResult:
        """Add a whole-invoice link; an invoice may have any number of them."""
        try:
            invoice_id = require_id(invoice_id, "invoice_id")
            transaction_id = require_id(transaction_id, "transaction_id")
            if self.store.get_invoice(invoice_id) is None:
                raise NotFoundError("Invoice", invoice_id)
            self._load_transaction(transaction_id)
            link = self.store.create_document_link(invoice_id, transaction_id)
        except MatchingError as e:
            logger.warning("Document link %s -> %s failed: %s", invoice_id, transaction_id, e)
            return LinkResult.fail(e, transaction_id=transaction_id)

        logger.info(
            "Document link %s: invoice %s -> transaction %s", link.id, invoice_id, transaction_id
        )
        return LinkResult.ok(link.id, transaction_id)

    def update_document_link(self, link_id: str, transaction_id: str) -> LinkResult:
        """Point an existing document link at another transaction."""
        try:
            link_id = require_id(link_id, "link_id")
            transaction_id = require_id(transaction_id, "transaction_id")
            self._load_document_link(link_id)
            self._load_transaction(transaction_id)
            if not self.store.update_document_link(link_id, transaction_id):
                raise NotFoundError("Document link", link_id)
        except MatchingError as e:
            logger.warning("Document link update %s failed: %s", link_id, e)
            return LinkResult.fail(e, link_id, transaction_id)

        logger.info("Document link %s -> transaction %s", link_id, transaction_id)
        return LinkResult.ok(link_id, transaction_id)

    def remove_document_link(self, link_id: str) -> LinkResult:
        """Delete a document link."""
        try:
            link_id = require_id(link_id, "link_id")
            self._load_document_link(link_id)
            if not self.store.delete_document_link(link_id):
                raise NotFoundError("Document link", link_id)
        except MatchingError as e:
            logger.warning("Document link removal %s failed: %s", link_id, e)
            return LinkResult.fail(e, link_id)

        logger.info("Removed document link %s", link_id)
        return LinkResult.ok(link_id)

    # === Queries ===

    def line_items_for_transaction(self, transaction_id: str) -> list[LineItem]:
        """Line items (not document links) linked to a transaction."""
        return [
            item
            for item in self.store.list_line_items_for_transaction(transaction_id)
            if not item.is_document_link
        ]

    def transaction_link_summary(self, transaction_id: str) -> TransactionLinkSummary:
        """
        Allocation of a transaction across its linked line items.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        transaction = self._load_transaction(transaction_id)
        rows = self.store.list_line_items_for_transaction(transaction_id)
        items = [r for r in rows if not r.is_document_link]
        allocated = sum(abs(item.total_minor or 0) for item in items)
        amount = abs(transaction.amount_minor)

        return TransactionLinkSummary(
            transaction_id=transaction_id,
            transaction_amount_minor=amount,
            linked_count=len(items),
            total_allocated_minor=allocated,
            remaining_minor=amount - allocated,
            document_link_count=len(rows) - len(items),
            line_item_ids=[item.id for item in items],
        )

    # === Helpers ===

    def _load_line_item(self, line_item_id: str) -> LineItem:
        item = self.store.get_line_item(line_item_id)
        if item is None:
            raise NotFoundError("Line item", line_item_id)
        if item.is_document_link:
            raise ValidationError(
                f"{line_item_id} is a document link; use the document link operations"
            )
        if item.is_linked != (item.match_status == MatchStatus.MATCHED):
            raise ExternalDependencyError(
                f"Line item {line_item_id} has inconsistent link state"
            )
        return item

    def _load_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.store.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def _load_linkable_transaction(self, transaction_id: str) -> Transaction:
        transaction = self._load_transaction(transaction_id)
        if transaction.transaction_type not in LINKABLE_TRANSACTION_TYPES:
            raise ValidationError(
                f"Transaction {transaction_id} is a {transaction.transaction_type.value} "
                "and cannot be linked to a line item"
            )
        return transaction

    def _load_document_link(self, link_id: str) -> LineItem:
        link = self.store.get_line_item(link_id)
        if link is None or not link.is_document_link:
            raise NotFoundError("Document link", link_id)
        return link
