"""
Entity schemas shared by every component.
"""

from .entities import (
    LINKABLE_TRANSACTION_TYPES,
    AggregateStatus,
    AliasMatchType,
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
    parse_date,
)

__all__ = [
    "LINKABLE_TRANSACTION_TYPES",
    "AggregateStatus",
    "AliasMatchType",
    "CCBankMatchResult",
    "ExchangeRate",
    "Invoice",
    "LineItem",
    "MatchMethod",
    "MatchStatus",
    "Transaction",
    "TransactionType",
    "VendorAlias",
    "format_date",
    "parse_date",
]
