"""Batch auto-matching of an invoice's line items.

For every unmatched line item of an invoice:
1. Fetch the candidate pool (linkable transactions around the line date)
2. Fetch exchange rates once per (date, currency set) for the session
3. Rank candidates (CandidateFilter + ScoreEngine)
4. Classify the best candidate into auto_matched / candidate / no_match

apply_auto_matches_for_invoice() then links every auto_matched item, each as
its own unit of work: one failure never aborts the rest of the batch.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..errors import ExternalDependencyError, NotFoundError
from ..rates.provider import ExchangeRateProvider, SessionRateCache, StoreRateProvider
from ..schemas.entities import Invoice, LineItem, MatchMethod, VendorAlias
from ..vendors.resolver import AliasVendorResolver, VendorResolver
from .filters import CandidateFilter, FilterOptions, ScoredCandidate
from .scorer import MatchScore, ScoreEngine

if TYPE_CHECKING:
    from ..config import Config
    from ..linking.manager import LinkManager
    from ..state_store.base import MatchStore

logger = logging.getLogger(__name__)


class AutoMatchStatus(str, Enum):
    """Confidence tier of a line item's best candidate."""

    AUTO_MATCHED = "auto_matched"
    CANDIDATE = "candidate"
    NO_MATCH = "no_match"


@dataclass
class LineItemMatchResult:
    """Auto-match outcome for one line item."""

    line_item_id: str
    status: AutoMatchStatus
    best_match: ScoredCandidate | None = None
    candidates: list[ScoredCandidate] = field(default_factory=list)
    suggested_method: MatchMethod | None = None
    error: str | None = None

    @property
    def confidence(self) -> int:
        return self.best_match.score.confidence if self.best_match else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_item_id": self.line_item_id,
            "status": self.status.value,
            "confidence": self.confidence,
            "best_match": self.best_match.to_dict() if self.best_match else None,
            "candidate_count": len(self.candidates),
            "suggested_method": self.suggested_method.value if self.suggested_method else None,
            "error": self.error,
        }


@dataclass
class AutoMatchSummary:
    """Bucket counts for one invoice."""

    auto_matched: int = 0
    candidate: int = 0
    no_match: int = 0
    skipped_linked: int = 0
    errors: int = 0


@dataclass
class AutoMatchInvoiceResult:
    """Auto-match outcome for a whole invoice."""

    invoice_id: str
    total_line_items: int
    results: list[LineItemMatchResult] = field(default_factory=list)
    summary: AutoMatchSummary = field(default_factory=AutoMatchSummary)
    duration_ms: int = 0


@dataclass
class ApplyOutcome:
    """Result of linking one auto-matched line item."""

    line_item_id: str
    transaction_id: str | None
    success: bool
    error: str | None = None


@dataclass
class BatchResult:
    """Result of applying auto matches for an invoice."""

    invoice_id: str
    applied: int = 0
    failed: int = 0
    results: list[ApplyOutcome] = field(default_factory=list)


class AutoMatchOrchestrator:
    """Runs candidate search, scoring and tiering for an invoice."""

    def __init__(
        self,
        store: MatchStore,
        config: Config,
        rate_provider: ExchangeRateProvider | None = None,
        vendor_resolver: VendorResolver | None = None,
        link_manager: LinkManager | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Persistence contract.
            config: Application configuration.
            rate_provider: Exchange rates (defaults to rates stored in the store).
            vendor_resolver: Vendor resolution (defaults to the store's aliases).
            link_manager: Used to apply matches (defaults to one over the store).
        """
        from ..linking.manager import LinkManager

        self.store = store
        self.config = config
        self.engine = ScoreEngine(config.scoring)
        self.rate_provider = rate_provider or StoreRateProvider(
            store,
            base_currency=config.scoring.base_currency,
            max_fallback_days=config.matching.rate_fallback_days,
        )
        self.vendor_resolver = vendor_resolver
        self.link_manager = link_manager or LinkManager(store)

    def classify(self, score: int) -> AutoMatchStatus:
        """Map a 0-100 score to its tier."""
        if score >= self.config.matching.auto_match_threshold:
            return AutoMatchStatus.AUTO_MATCHED
        if score >= self.config.matching.review_threshold:
            return AutoMatchStatus.CANDIDATE
        return AutoMatchStatus.NO_MATCH

    def suggest_method(self, candidate: ScoredCandidate) -> MatchMethod:
        """Which rule a link based on this candidate is attributed to."""
        score: MatchScore = candidate.score
        if score.breakdown.reference > 0:
            return MatchMethod.RULE_REFERENCE
        if (
            score.amount_difference_minor == 0
            and score.date_distance_days is not None
            and score.date_distance_days <= self.config.scoring.date_full_credit_days
        ):
            return MatchMethod.RULE_AMOUNT_DATE
        return MatchMethod.RULE_FUZZY

    def auto_match_invoice(self, invoice_id: str) -> AutoMatchInvoiceResult:
        """
        Score and tier every unmatched line item of an invoice.

        Already-linked line items and document links are excluded. A fetch
        failure for one line item is recorded on that item and the rest
        continue.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        start = time.time()
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)

        items = self.store.list_line_items(invoice_id, include_document_links=False)
        pending = [item for item in items if not item.is_linked]
        result = AutoMatchInvoiceResult(invoice_id=invoice_id, total_line_items=len(items))
        result.summary.skipped_linked = len(items) - len(pending)

        aliases = self._load_aliases()
        resolver = self.vendor_resolver or AliasVendorResolver(aliases)
        rates = SessionRateCache(self.rate_provider)
        candidate_filter = CandidateFilter(
            FilterOptions.from_config(self.config.matching),
            vendor_resolver=resolver,
            base_currency=self.config.scoring.base_currency,
        )

        def match(item: LineItem) -> LineItemMatchResult:
            return self._match_line_item(item, invoice, aliases, rates, candidate_filter)

        workers = self.config.matching.max_workers
        if workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                result.results = list(executor.map(match, pending))
        else:
            result.results = [match(item) for item in pending]

        for item_result in result.results:
            if item_result.status == AutoMatchStatus.AUTO_MATCHED:
                result.summary.auto_matched += 1
            elif item_result.status == AutoMatchStatus.CANDIDATE:
                result.summary.candidate += 1
            else:
                result.summary.no_match += 1
            if item_result.error:
                result.summary.errors += 1

        result.duration_ms = int((time.time() - start) * 1000)
        logger.info(
            "Auto-match invoice %s: %d auto, %d candidate, %d no match, %d already linked (%dms)",
            invoice_id,
            result.summary.auto_matched,
            result.summary.candidate,
            result.summary.no_match,
            result.summary.skipped_linked,
            result.duration_ms,
        )
        return result

    def apply_auto_matches_for_invoice(self, invoice_id: str) -> BatchResult:
        """
        Link every auto_matched line item of an invoice.

        Re-running is safe: items linked by an earlier run are excluded by
        auto_match_invoice().

        Raises:
            NotFoundError: If the invoice does not exist
        """
        matches = self.auto_match_invoice(invoice_id)
        batch = BatchResult(invoice_id=invoice_id)

        for item_result in matches.results:
            if item_result.status != AutoMatchStatus.AUTO_MATCHED or item_result.best_match is None:
                continue

            transaction_id = item_result.best_match.transaction_id
            try:
                link_result = self.link_manager.link(
                    item_result.line_item_id,
                    transaction_id,
                    method=item_result.suggested_method or MatchMethod.RULE_FUZZY,
                    confidence=item_result.confidence,
                )
                outcome = ApplyOutcome(
                    line_item_id=item_result.line_item_id,
                    transaction_id=transaction_id,
                    success=link_result.success,
                    error=link_result.error,
                )
            except Exception as e:
                logger.exception("Unexpected error linking line item %s", item_result.line_item_id)
                outcome = ApplyOutcome(
                    line_item_id=item_result.line_item_id,
                    transaction_id=transaction_id,
                    success=False,
                    error=str(e),
                )

            batch.results.append(outcome)
            if outcome.success:
                batch.applied += 1
            else:
                batch.failed += 1

        logger.info(
            "Applied auto matches for invoice %s: %d applied, %d failed",
            invoice_id,
            batch.applied,
            batch.failed,
        )
        return batch

    # === Internals ===

    def _load_aliases(self) -> list[VendorAlias]:
        try:
            return self.store.list_vendor_aliases()
        except ExternalDependencyError as e:
            logger.warning("Vendor aliases unavailable, matching without them: %s", e)
            return []

    def _match_line_item(
        self,
        item: LineItem,
        invoice: Invoice,
        aliases: list[VendorAlias],
        rates: SessionRateCache,
        candidate_filter: CandidateFilter,
    ) -> LineItemMatchResult:
        anchor = item.transaction_date or invoice.invoice_date
        if anchor is None:
            logger.warning("Line item %s has no date; skipping candidate search", item.id)
            return LineItemMatchResult(
                line_item_id=item.id,
                status=AutoMatchStatus.NO_MATCH,
                error="No date on line item or invoice",
            )

        try:
            date_from, date_to = candidate_filter.date_window(anchor)
            pool = self.store.list_transactions(
                types=candidate_filter.options.transaction_types,
                date_from=date_from,
                date_to=date_to,
            )

            currency = (item.currency or invoice.currency or "").upper()
            exchange_rates = None
            if currency and currency != self.config.scoring.base_currency.upper():
                exchange_rates = rates.rates_for(anchor, [currency])

            candidates = candidate_filter.rank(
                item,
                invoice,
                pool,
                self.engine,
                vendor_aliases=aliases,
                exchange_rates=exchange_rates,
            )
        except ExternalDependencyError as e:
            logger.warning("Candidate search failed for line item %s: %s", item.id, e)
            return LineItemMatchResult(
                line_item_id=item.id, status=AutoMatchStatus.NO_MATCH, error=str(e)
            )

        if not candidates:
            return LineItemMatchResult(line_item_id=item.id, status=AutoMatchStatus.NO_MATCH)

        best = candidates[0]
        return LineItemMatchResult(
            line_item_id=item.id,
            status=self.classify(best.score.confidence),
            best_match=best,
            candidates=candidates,
            suggested_method=self.suggest_method(best),
        )
