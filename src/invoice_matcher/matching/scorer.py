"""Score engine for line item ↔ transaction pairs.

Rates how likely a transaction pays for an invoice line item on a 0-100
scale from five axes (reference, amount, date, vendor, currency) plus
penalties. Scoring is pure: no I/O, inputs are never mutated, and the same
inputs always give the same score.

A pair can be disqualified (income rows, ineligible types, amounts or dates
far outside tolerance, unconvertible currencies). Disqualification is a
result, never an exception; the breakdown is still filled in for audit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..config import ScoringConfig
from ..rates.provider import ConversionDetails, RateMap, convert_minor
from ..schemas.entities import (
    LINKABLE_TRANSACTION_TYPES,
    Invoice,
    LineItem,
    Transaction,
    VendorAlias,
)
from ..vendors.resolver import AliasVendorResolver, VendorResolver, tokenize

logger = logging.getLogger(__name__)

# Share of the reference weight for weaker reference hits
REFERENCE_IN_DESCRIPTION_RATIO = 0.8
REFERENCE_PARTIAL_RATIO = 0.5
REFERENCE_PARTIAL_LENGTH = 6

# Share of the vendor weight for token matches
VENDOR_SINGLE_TOKEN_RATIO = 0.8
VENDOR_FUZZY_RATIO = 0.72
VENDOR_FUZZY_MIN_LENGTH = 4


@dataclass
class ScoreBreakdown:
    """Points earned per axis."""

    reference: float = 0.0
    amount: float = 0.0
    date: float = 0.0
    vendor: float = 0.0
    currency: float = 0.0

    @property
    def total(self) -> float:
        return self.reference + self.amount + self.date + self.vendor + self.currency

    def to_dict(self) -> dict[str, float]:
        return {
            "reference": round(self.reference, 2),
            "amount": round(self.amount, 2),
            "date": round(self.date, 2),
            "vendor": round(self.vendor, 2),
            "currency": round(self.currency, 2),
        }


@dataclass
class ScorePenalties:
    """Negative adjustments (always <= 0)."""

    vendor_mismatch: float = 0.0
    currency_unconvertible: float = 0.0

    @property
    def total(self) -> float:
        return self.vendor_mismatch + self.currency_unconvertible

    def to_dict(self) -> dict[str, float]:
        return {
            "vendor_mismatch": self.vendor_mismatch,
            "currency_unconvertible": self.currency_unconvertible,
        }


@dataclass
class MatchScore:
    """Score of one transaction against one line item."""

    transaction_id: str
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    penalties: ScorePenalties = field(default_factory=ScorePenalties)
    raw_total: float = 0.0
    total: int = 0
    match_reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_disqualified: bool = False
    disqualify_reason: str | None = None
    conversion_details: ConversionDetails | None = None
    date_distance_days: int | None = None
    amount_difference_minor: int | None = None

    @property
    def confidence(self) -> int:
        """Reported confidence: 0 whenever the pair is disqualified."""
        return 0 if self.is_disqualified else self.total

    def disqualify(self, reason: str) -> None:
        """Mark as disqualified; the first reason wins."""
        if not self.is_disqualified:
            self.is_disqualified = True
            self.disqualify_reason = reason

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "transaction_id": self.transaction_id,
            "total": self.total,
            "confidence": self.confidence,
            "raw_total": round(self.raw_total, 2),
            "breakdown": self.breakdown.to_dict(),
            "penalties": self.penalties.to_dict(),
            "match_reasons": list(self.match_reasons),
            "warnings": list(self.warnings),
            "is_disqualified": self.is_disqualified,
            "disqualify_reason": self.disqualify_reason,
            "conversion_details": (
                self.conversion_details.to_dict() if self.conversion_details else None
            ),
        }


@dataclass
class ScoringContext:
    """Everything about the line item side needed to score transactions."""

    line_item: LineItem
    invoice: Invoice | None = None
    vendor_aliases: list[VendorAlias] = field(default_factory=list)
    exchange_rates: RateMap | None = None
    vendor_resolver: VendorResolver | None = None

    def __post_init__(self) -> None:
        if self.vendor_resolver is None:
            self.vendor_resolver = AliasVendorResolver(self.vendor_aliases)

    @property
    def anchor_date(self) -> date | None:
        """Date of the line item, falling back to the invoice date."""
        if self.line_item.transaction_date:
            return self.line_item.transaction_date
        return self.invoice.invoice_date if self.invoice else None

    @property
    def currency(self) -> str | None:
        if self.line_item.currency:
            return self.line_item.currency.upper()
        return self.invoice.currency.upper() if self.invoice and self.invoice.currency else None


class ScoreEngine:
    """Multi-axis scorer for line item ↔ transaction pairs.

    Axes and their maxima come from ScoringConfig.weights:
    - Reference: invoice number / reference found on the transaction
    - Amount: continuous decay on relative difference, hard bound disqualifies
    - Date: full credit near the date, linear decay, hard cutoff disqualifies
    - Vendor: alias resolution, then token overlap; mismatch is penalized
    - Currency: native match, converted, or unconvertible (penalty)
    """

    def __init__(self, scoring: ScoringConfig | None = None) -> None:
        self.scoring = scoring or ScoringConfig()
        self.weights = self.scoring.weights

    def score(self, transaction: Transaction, context: ScoringContext) -> MatchScore:
        """Score a single transaction against the context's line item."""
        result = MatchScore(transaction_id=transaction.id)

        # Hard disqualifiers: nothing else is worth computing
        if transaction.is_income:
            result.disqualify("Transaction is income")
            return result
        if transaction.transaction_type not in LINKABLE_TRANSACTION_TYPES:
            result.disqualify(
                f"Transaction type {transaction.transaction_type.value} is not eligible"
            )
            return result
        if context.invoice is not None and context.invoice.is_income:
            result.disqualify("Invoice is income")
            return result

        self._score_reference(transaction, context, result)
        self._score_amount(transaction, context, result)
        self._score_date(transaction, context, result)
        self._score_vendor(transaction, context, result)

        result.raw_total = result.breakdown.total + result.penalties.total
        effective_max = self.weights.total
        if result.breakdown.reference <= 0:
            # Absent or unmatched reference is not a penalty
            effective_max -= self.weights.reference

        if effective_max > 0:
            normalized = result.raw_total / effective_max * 100
            result.total = max(0, min(100, int(round(normalized))))
        else:
            result.total = 0

        logger.debug(
            "Scored tx %s vs line item %s: %d%s",
            transaction.id,
            context.line_item.id,
            result.total,
            f" (disqualified: {result.disqualify_reason})" if result.is_disqualified else "",
        )
        return result

    # === Reference ===

    @staticmethod
    def _normalize_reference(value: str | None) -> str:
        return "".join((value or "").split()).upper()

    def _score_reference(
        self, transaction: Transaction, context: ScoringContext, result: MatchScore
    ) -> None:
        line_ref = self._normalize_reference(context.line_item.reference)
        if not line_ref and context.invoice is not None:
            line_ref = self._normalize_reference(context.invoice.invoice_number)

        tx_ref = self._normalize_reference(transaction.reference)
        tx_desc = self._normalize_reference(transaction.description)
        if not line_ref or not (tx_ref or tx_desc):
            return  # Not scored

        weight = self.weights.reference
        if tx_ref and tx_ref == line_ref:
            result.breakdown.reference = weight
            result.match_reasons.append(f"Reference match ({line_ref})")
        elif line_ref in tx_desc or (tx_ref and line_ref in tx_ref):
            result.breakdown.reference = weight * REFERENCE_IN_DESCRIPTION_RATIO
            result.match_reasons.append(f"Reference found in description ({line_ref})")
        elif len(line_ref) > REFERENCE_PARTIAL_LENGTH:
            tail = line_ref[-REFERENCE_PARTIAL_LENGTH:]
            if tail in tx_desc or tail in tx_ref:
                result.breakdown.reference = weight * REFERENCE_PARTIAL_RATIO
                result.match_reasons.append(f"Partial reference match (...{tail})")

    # === Amount / Currency ===

    def _score_amount(
        self, transaction: Transaction, context: ScoringContext, result: MatchScore
    ) -> None:
        base = self.scoring.base_currency.upper()
        line_currency = context.currency or base
        line_amount = abs(context.line_item.total_minor or 0)

        if transaction.has_foreign_amount:
            tx_currency = transaction.foreign_currency.upper()
            tx_native_amount = abs(transaction.foreign_amount_minor)
        else:
            tx_currency = base
            tx_native_amount = abs(transaction.amount_minor)
        tx_base_amount = abs(transaction.amount_minor)

        converted = False
        if line_currency == tx_currency:
            compare_line, compare_tx = line_amount, tx_native_amount
        elif line_currency == base:
            # Bank already charged in base currency; no rate needed
            compare_line, compare_tx = line_amount, tx_base_amount
            converted = True
        else:
            quote = (context.exchange_rates or {}).get(line_currency)
            if quote is None:
                result.warnings.append(f"Exchange rate unavailable for {line_currency}")
                result.penalties.currency_unconvertible = (
                    self.scoring.currency_unconvertible_penalty
                )
                result.disqualify(f"Currency unconvertible: no {line_currency} rate")
                return
            converted_line = convert_minor(line_amount, quote.rate)
            result.conversion_details = ConversionDetails(
                from_currency=line_currency,
                to_currency=base,
                original_minor=line_amount,
                converted_minor=converted_line,
                rate=quote.rate,
                rate_date=quote.rate_date,
                requested_date=context.anchor_date,
            )
            if result.conversion_details.rate_date_differs:
                result.warnings.append(
                    f"{line_currency} rate from {quote.rate_date.isoformat()} used for "
                    f"{context.anchor_date.isoformat()}"
                )
            compare_line, compare_tx = converted_line, tx_base_amount
            converted = True

        self._score_currency(line_currency, tx_currency, converted, result)

        if compare_line == 0 or compare_tx == 0:
            result.warnings.append("Zero amount; amount not compared")
            return

        diff = abs(compare_line - compare_tx)
        pct = diff / compare_line * 100
        result.amount_difference_minor = diff

        if converted:
            decay = self.scoring.amount_decay_percent_converted
            hard_bound = self.scoring.amount_hard_mismatch_percent_converted
        else:
            decay = self.scoring.amount_decay_percent
            hard_bound = self.scoring.amount_hard_mismatch_percent

        if decay > 0:
            result.breakdown.amount = self.weights.amount / (1 + (pct / decay) ** 2)
        elif diff == 0:
            result.breakdown.amount = self.weights.amount

        if diff == 0:
            result.match_reasons.append("Exact amount match" + (" (converted)" if converted else ""))
        elif pct <= decay:
            result.match_reasons.append(f"Amount within {pct:.1f}%")

        if pct > hard_bound:
            result.disqualify(f"Amount differs by {pct:.1f}% (limit {hard_bound:g}%)")

    def _score_currency(
        self, line_currency: str, tx_currency: str, converted: bool, result: MatchScore
    ) -> None:
        weight = self.weights.currency
        if line_currency == tx_currency:
            result.breakdown.currency = weight
            result.match_reasons.append(f"Same currency ({line_currency})")
        elif converted:
            result.breakdown.currency = weight * self.scoring.converted_currency_ratio

    # === Date ===

    def _score_date(
        self, transaction: Transaction, context: ScoringContext, result: MatchScore
    ) -> None:
        weight = self.weights.date
        line_date = context.anchor_date
        if line_date is None:
            result.breakdown.date = weight / 2
            result.match_reasons.append("No date on line item (partial date credit)")
            return

        days = abs((transaction.date - line_date).days)
        if transaction.value_date is not None:
            days = min(days, abs((transaction.value_date - line_date).days))
        result.date_distance_days = days

        full = self.scoring.date_full_credit_days
        zero = self.scoring.date_zero_credit_days
        if days <= full:
            result.breakdown.date = weight
            result.match_reasons.append("Same day" if days == 0 else f"Date within {days} day(s)")
        elif days <= zero:
            result.breakdown.date = weight * (zero + 1 - days) / (zero + 1 - full)
            result.match_reasons.append(f"Date {days} days apart")

        cutoff = self.scoring.date_hard_cutoff_days
        if days > cutoff:
            result.disqualify(f"Dates {days} days apart (limit {cutoff})")

    # === Vendor ===

    def _score_vendor(
        self, transaction: Transaction, context: ScoringContext, result: MatchScore
    ) -> None:
        weight = self.weights.vendor
        vendor_name = context.invoice.vendor_name if context.invoice else None
        target = (vendor_name or context.line_item.description or "").strip()

        resolution = context.vendor_resolver.describe(transaction.description)
        if resolution.is_resolved and target:
            canonical = resolution.display_name.lower()
            if canonical and (canonical in target.lower() or target.lower() in canonical):
                result.breakdown.vendor = weight
                result.match_reasons.append(f"Vendor alias match ({resolution.display_name})")
                return

        line_tokens = set(tokenize(vendor_name)) | set(tokenize(context.line_item.description))
        tx_tokens = set(tokenize(transaction.description)) | set(
            tokenize(resolution.display_name)
        )
        if not line_tokens or not tx_tokens:
            return  # Nothing to compare

        exact = line_tokens & tx_tokens
        if len(exact) >= 2:
            result.breakdown.vendor = weight
            result.match_reasons.append(f"Vendor match ({', '.join(sorted(exact))})")
            return
        if len(exact) == 1:
            result.breakdown.vendor = weight * VENDOR_SINGLE_TOKEN_RATIO
            result.match_reasons.append(f"Vendor match ({next(iter(exact))})")
            return

        fuzzy = sorted(
            a
            for a in line_tokens
            for b in tx_tokens
            if len(a) >= VENDOR_FUZZY_MIN_LENGTH
            and len(b) >= VENDOR_FUZZY_MIN_LENGTH
            and (a in b or b in a)
        )
        if fuzzy:
            result.breakdown.vendor = weight * VENDOR_FUZZY_RATIO
            result.match_reasons.append(f"Vendor partial match ({fuzzy[0]})")
            return

        result.penalties.vendor_mismatch = self.scoring.vendor_mismatch_penalty
        result.warnings.append("Vendor does not match")


def score_match(
    transaction: Transaction,
    context: ScoringContext,
    scoring: ScoringConfig | None = None,
) -> MatchScore:
    """Score one transaction against one line item (pure)."""
    return ScoreEngine(scoring).score(transaction, context)
