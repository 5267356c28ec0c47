"""
Core entities (SSOT).

Amounts are signed integers in minor units (agorot, cents). A negative
transaction amount is money leaving the account. Dates are datetime.date.

Key invariants:
- A line item has at most one live non-document transaction link
- transaction_id is None <=> match_status == UNMATCHED
- Document links are separate rows with is_document_link=True
- A cc_purchase has at most one parent_bank_charge_id
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Mapping


class TransactionType(str, Enum):
    """Kind of bank/card row."""

    BANK_REGULAR = "bank_regular"
    CC_PURCHASE = "cc_purchase"
    BANK_CC_CHARGE = "bank_cc_charge"  # Aggregated card payoff on the bank statement


# Only these can be linked to invoice line items
LINKABLE_TRANSACTION_TYPES = (TransactionType.BANK_REGULAR, TransactionType.CC_PURCHASE)


class MatchStatus(str, Enum):
    """Link state of a line item."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"


class MatchMethod(str, Enum):
    """How a link was established."""

    MANUAL = "manual"
    RULE_REFERENCE = "rule_reference"
    RULE_AMOUNT_DATE = "rule_amount_date"
    RULE_FUZZY = "rule_fuzzy"
    AI_ASSISTED = "ai_assisted"


class AggregateStatus(str, Enum):
    """Review status of a CC ↔ bank aggregate match."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AliasMatchType(str, Enum):
    """How a vendor alias pattern is compared to a description."""

    EXACT = "exact"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


def parse_date(value: Any) -> date | None:
    """Parse an ISO date (or datetime) string; pass dates through."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_date(value: date | None) -> str | None:
    """Format a date as ISO string for storage."""
    return value.isoformat() if value else None


@dataclass
class Invoice:
    """An invoice document (header only)."""

    id: str
    vendor_name: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    total_minor: int | None = None
    currency: str = "ILS"
    is_income: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Invoice":
        """Create from database row."""
        return cls(
            id=row["id"],
            vendor_name=row["vendor_name"],
            invoice_number=row["invoice_number"],
            invoice_date=parse_date(row["invoice_date"]),
            due_date=parse_date(row["due_date"]),
            total_minor=row["total_minor"],
            currency=row["currency"],
            is_income=bool(row["is_income"]),
        )


@dataclass
class LineItem:
    """An invoice line item, or a whole-document link row."""

    id: str
    invoice_id: str
    description: str | None = None
    total_minor: int = 0
    currency: str = "ILS"
    transaction_date: date | None = None
    reference: str | None = None
    is_document_link: bool = False
    transaction_id: str | None = None
    match_status: MatchStatus = MatchStatus.UNMATCHED
    match_confidence: int | None = None
    match_method: MatchMethod | None = None
    matched_at: str | None = None  # ISO timestamp

    @property
    def is_linked(self) -> bool:
        return self.transaction_id is not None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LineItem":
        """Create from database row."""
        return cls(
            id=row["id"],
            invoice_id=row["invoice_id"],
            description=row["description"],
            total_minor=row["total_minor"],
            currency=row["currency"],
            transaction_date=parse_date(row["transaction_date"]),
            reference=row["reference"],
            is_document_link=bool(row["is_document_link"]),
            transaction_id=row["transaction_id"],
            match_status=MatchStatus(row["match_status"]),
            match_confidence=row["match_confidence"],
            match_method=MatchMethod(row["match_method"]) if row["match_method"] else None,
            matched_at=row["matched_at"],
        )


@dataclass
class Transaction:
    """A bank or credit-card row."""

    id: str
    date: date
    amount_minor: int
    description: str = ""
    transaction_type: TransactionType = TransactionType.BANK_REGULAR
    value_date: date | None = None
    reference: str | None = None
    foreign_currency: str | None = None
    foreign_amount_minor: int | None = None
    credit_card_id: str | None = None
    parent_bank_charge_id: str | None = None
    has_vat: bool = False
    vat_percentage: float | None = None
    is_income: bool = False

    @property
    def has_foreign_amount(self) -> bool:
        return bool(self.foreign_currency) and self.foreign_amount_minor is not None

    @property
    def charge_date(self) -> date:
        """Date the amount hits the account (value date when known)."""
        return self.value_date or self.date

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Transaction":
        """Create from database row."""
        return cls(
            id=row["id"],
            date=parse_date(row["date"]),
            amount_minor=row["amount_minor"],
            description=row["description"] or "",
            transaction_type=TransactionType(row["transaction_type"]),
            value_date=parse_date(row["value_date"]),
            reference=row["reference"],
            foreign_currency=row["foreign_currency"],
            foreign_amount_minor=row["foreign_amount_minor"],
            credit_card_id=row["credit_card_id"],
            parent_bank_charge_id=row["parent_bank_charge_id"],
            has_vat=bool(row["has_vat"]),
            vat_percentage=row["vat_percentage"],
            is_income=bool(row["is_income"]),
        )


@dataclass
class VendorAlias:
    """User-defined mapping of a bank description pattern to a vendor name."""

    alias_pattern: str
    canonical_name: str
    match_type: AliasMatchType = AliasMatchType.CONTAINS
    priority: int = 0
    id: int | None = None
    source: str = "user"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VendorAlias":
        """Create from database row."""
        return cls(
            id=row["id"],
            alias_pattern=row["alias_pattern"],
            canonical_name=row["canonical_name"],
            match_type=AliasMatchType(row["match_type"]),
            priority=row["priority"],
            source=row["source"],
        )


@dataclass
class ExchangeRate:
    """Stored rate: base units per `unit` foreign units on rate_date."""

    currency: str
    rate_date: date
    rate: float
    unit: int = 1

    @property
    def per_unit(self) -> float:
        return self.rate / self.unit if self.unit else self.rate

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ExchangeRate":
        """Create from database row."""
        return cls(
            currency=row["currency"],
            rate_date=parse_date(row["rate_date"]),
            rate=row["rate"],
            unit=row["unit"],
        )


@dataclass
class CCBankMatchResult:
    """Aggregate of card purchases paid off by one bank debit.

    Totals are always the product of a recompute over the linked rows.
    """

    id: str
    bank_transaction_id: str
    credit_card_id: str | None
    charge_date: date | None
    bank_amount_minor: int
    total_cc_amount_minor: int
    cc_transaction_count: int
    discrepancy_minor: int
    discrepancy_percent: float
    match_confidence: int | None = None
    status: AggregateStatus = AggregateStatus.PENDING
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CCBankMatchResult":
        """Create from database row."""
        return cls(
            id=row["id"],
            bank_transaction_id=row["bank_transaction_id"],
            credit_card_id=row["credit_card_id"],
            charge_date=parse_date(row["charge_date"]),
            bank_amount_minor=row["bank_amount_minor"],
            total_cc_amount_minor=row["total_cc_amount_minor"],
            cc_transaction_count=row["cc_transaction_count"],
            discrepancy_minor=row["discrepancy_minor"],
            discrepancy_percent=row["discrepancy_percent"],
            match_confidence=row["match_confidence"],
            status=AggregateStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display/serialization."""
        return {
            "id": self.id,
            "bank_transaction_id": self.bank_transaction_id,
            "credit_card_id": self.credit_card_id,
            "charge_date": format_date(self.charge_date),
            "bank_amount_minor": self.bank_amount_minor,
            "total_cc_amount_minor": self.total_cc_amount_minor,
            "cc_transaction_count": self.cc_transaction_count,
            "discrepancy_minor": self.discrepancy_minor,
            "discrepancy_percent": self.discrepancy_percent,
            "match_confidence": self.match_confidence,
            "status": self.status.value,
        }
