"""Candidate filtering and ranking.

Narrows a transaction pool down to plausible candidates for a line item
(type, date window, currency, card, free text), scores the survivors and
returns them ranked. The reverse direction finds unmatched line items for a
transaction. Empty input or no survivors yields an empty list.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum

from ..config import MatchingConfig
from ..rates.provider import RateMap
from ..schemas.entities import (
    LINKABLE_TRANSACTION_TYPES,
    Invoice,
    LineItem,
    Transaction,
    TransactionType,
    VendorAlias,
)
from ..vendors.resolver import VendorResolver
from .scorer import MatchScore, ScoreEngine, ScoringContext

logger = logging.getLogger(__name__)


class SortKey(str, Enum):
    """Candidate ordering."""

    SCORE = "score"
    DATE_PROXIMITY = "date_proximity"
    AMOUNT_DIFFERENCE = "amount_difference"
    DATE = "date"


@dataclass
class FilterOptions:
    """Candidate filter settings."""

    transaction_types: tuple[TransactionType, ...] = LINKABLE_TRANSACTION_TYPES
    lookback_days: int = 30
    lookforward_days: int = 30
    # Transaction currencies to keep (None = any)
    currencies: set[str] | None = None
    # Card identities to keep (None = any)
    card_ids: set[str] | None = None
    # Case-insensitive text on description or resolved vendor
    search: str | None = None
    min_score: int = 0
    sort_by: SortKey = SortKey.SCORE
    descending: bool = True
    limit: int | None = None

    @classmethod
    def from_config(cls, matching: MatchingConfig, **overrides) -> FilterOptions:
        """Defaults taken from the matching config."""
        options = cls(
            lookback_days=matching.lookback_days,
            lookforward_days=matching.lookforward_days,
            min_score=matching.review_threshold,
            limit=matching.max_candidates,
        )
        return replace(options, **overrides)


@dataclass
class ScoredCandidate:
    """A transaction with its score against a line item."""

    transaction: Transaction
    score: MatchScore
    date_distance_days: int | None = None
    amount_difference_minor: int | None = None

    @property
    def transaction_id(self) -> str:
        return self.transaction.id

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction.id,
            "date": self.transaction.date.isoformat(),
            "amount_minor": self.transaction.amount_minor,
            "description": self.transaction.description,
            "score": self.score.to_dict(),
        }


@dataclass
class MatchableLineItem:
    """Reverse-direction candidate: an unmatched line item for a transaction."""

    line_item: LineItem
    invoice: Invoice | None
    date_distance_days: int | None = None
    amount_difference_minor: int = 0


def transaction_currency(transaction: Transaction, base_currency: str) -> str:
    """Currency a transaction was made in."""
    if transaction.has_foreign_amount:
        return transaction.foreign_currency.upper()
    return base_currency.upper()


class CandidateFilter:
    """Filters and ranks candidate transactions for a line item."""

    def __init__(
        self,
        options: FilterOptions | None = None,
        vendor_resolver: VendorResolver | None = None,
        base_currency: str = "ILS",
    ) -> None:
        self.options = options or FilterOptions()
        self.vendor_resolver = vendor_resolver
        self.base_currency = base_currency

    def date_window(self, anchor: date) -> tuple[date, date]:
        """Inclusive date window around an anchor date."""
        return (
            anchor - timedelta(days=self.options.lookback_days),
            anchor + timedelta(days=self.options.lookforward_days),
        )

    def prefilter(
        self, transactions: Iterable[Transaction], anchor_date: date | None
    ) -> list[Transaction]:
        """Cheap structural filters applied before scoring."""
        opts = self.options
        window = self.date_window(anchor_date) if anchor_date else None
        currencies = {c.upper() for c in opts.currencies} if opts.currencies else None
        search = opts.search.strip().lower() if opts.search and opts.search.strip() else None

        kept = []
        for tx in transactions:
            if tx.is_income:
                continue
            if tx.transaction_type not in opts.transaction_types:
                continue
            if window and not self._in_window(tx, window):
                continue
            if currencies and transaction_currency(tx, self.base_currency) not in currencies:
                continue
            if opts.card_ids and tx.credit_card_id not in opts.card_ids:
                continue
            if search and not self._matches_search(tx, search):
                continue
            kept.append(tx)
        return kept

    @staticmethod
    def _in_window(transaction: Transaction, window: tuple[date, date]) -> bool:
        """Booking date or value date inside the window."""
        start, end = window
        if start <= transaction.date <= end:
            return True
        return transaction.value_date is not None and start <= transaction.value_date <= end

    def _matches_search(self, transaction: Transaction, search: str) -> bool:
        if search in (transaction.description or "").lower():
            return True
        if self.vendor_resolver is not None:
            return search in self.vendor_resolver.resolve(transaction.description).lower()
        return False

    def rank(
        self,
        line_item: LineItem,
        invoice: Invoice | None,
        transactions: Iterable[Transaction],
        engine: ScoreEngine,
        vendor_aliases: list[VendorAlias] | None = None,
        exchange_rates: RateMap | None = None,
    ) -> list[ScoredCandidate]:
        """Prefilter, score, drop disqualified/low scores, sort and limit."""
        context = ScoringContext(
            line_item=line_item,
            invoice=invoice,
            vendor_aliases=vendor_aliases or [],
            exchange_rates=exchange_rates,
            vendor_resolver=self.vendor_resolver,
        )

        candidates = []
        for tx in self.prefilter(transactions, context.anchor_date):
            score = engine.score(tx, context)
            if score.is_disqualified:
                logger.debug("Dropped tx %s: %s", tx.id, score.disqualify_reason)
                continue
            if score.total < self.options.min_score:
                continue
            candidates.append(
                ScoredCandidate(
                    transaction=tx,
                    score=score,
                    date_distance_days=score.date_distance_days,
                    amount_difference_minor=score.amount_difference_minor,
                )
            )

        candidates = self.sort(candidates)
        if self.options.limit is not None:
            candidates = candidates[: self.options.limit]
        return candidates

    def sort(self, candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
        """Order by the configured key; ties go to the higher score, then id."""
        far = 10**9
        sign = -1 if self.options.descending else 1
        key = self.options.sort_by

        def proximity(c: ScoredCandidate) -> int:
            return c.date_distance_days if c.date_distance_days is not None else far

        if key == SortKey.SCORE:
            return sorted(
                candidates,
                key=lambda c: (sign * c.score.total, proximity(c), c.transaction.id),
            )

        if key == SortKey.DATE_PROXIMITY:
            primary = proximity
        elif key == SortKey.AMOUNT_DIFFERENCE:

            def primary(c: ScoredCandidate) -> int:
                return c.amount_difference_minor if c.amount_difference_minor is not None else far

        else:

            def primary(c: ScoredCandidate) -> int:
                return c.transaction.date.toordinal()

        return sorted(
            candidates,
            key=lambda c: (sign * primary(c), -c.score.total, c.transaction.id),
        )


def matchable_line_items(
    transaction: Transaction,
    line_items: Iterable[LineItem],
    invoices: Mapping[str, Invoice],
    date_range_days: int = 7,
    amount_tolerance_percent: float = 10.0,
    vendor_name: str | None = None,
    search: str | None = None,
) -> list[MatchableLineItem]:
    """
    Unmatched line items that could belong to a transaction.

    Items with no date at all are kept (left to the user). A tolerance of
    100% or more disables the amount filter.

    Returns:
        Candidates sorted by date proximity (undated last), then id
    """
    tx_amount = abs(transaction.amount_minor)
    tolerance = tx_amount * amount_tolerance_percent / 100
    skip_amount = amount_tolerance_percent >= 100
    vendor_lower = vendor_name.lower() if vendor_name else None
    search_lower = search.lower() if search else None

    results = []
    for item in line_items:
        if item.is_document_link or item.is_linked:
            continue
        invoice = invoices.get(item.invoice_id)
        if search_lower and search_lower not in (item.description or "").lower():
            continue
        if vendor_lower and vendor_lower not in ((invoice.vendor_name if invoice else "") or "").lower():
            continue

        item_date = item.transaction_date or (invoice.invoice_date if invoice else None)
        distance = None
        if item_date is not None:
            distance = abs((item_date - transaction.date).days)
            if distance > date_range_days:
                continue

        item_amount = abs(item.total_minor or 0)
        if not skip_amount and abs(item_amount - tx_amount) > tolerance:
            continue

        results.append(
            MatchableLineItem(
                line_item=item,
                invoice=invoice,
                date_distance_days=distance,
                amount_difference_minor=abs(item_amount - tx_amount),
            )
        )

    results.sort(
        key=lambda m: (
            m.date_distance_days if m.date_distance_days is not None else 10**9,
            m.line_item.id,
        )
    )
    return results
