"""
Credit card ↔ bank charge reconciliation.

A bank statement shows one aggregated debit (bank_cc_charge) per card
billing cycle; the card statement shows the individual purchases
(cc_purchase). Attaching purchases to a charge maintains one aggregate
record per charge whose totals are always recomputed from the rows that
are attached at that moment.

Aggregate status lifecycle: pending -> approved | rejected.
"""

import logging
import re
import uuid
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from ..errors import ConflictError, NotFoundError, ValidationError, require_id
from ..schemas.entities import (
    AggregateStatus,
    CCBankMatchResult,
    Transaction,
    TransactionType,
)
from ..state_store.base import MatchStore

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

# Keywords that mark a bank row as a card payoff
CC_CHARGE_KEYWORDS = (
    "כרטיס",
    "ויזא",
    "ויזה",
    "visa",
    "מאסטרקארד",
    "mastercard",
    "אמריקן אקספרס",
    "amex",
    "ישראכרט",
    "לאומי קארד",
    "מקס",
    "כאל",
    "חיוב לכרטיס",
)

_FOUR_DIGITS = re.compile(r"\d{4}")

# Share of proposal confidence from date proximity (rest is amount)
PROPOSAL_DATE_WEIGHT = 0.6


def detect_card_last_four(description: str | None) -> str | None:
    """
    Detect a card payoff row and return the card's last four digits.

    Returns:
        The last 4-digit group of a card charge description, else None
    """
    if not description:
        return None
    normalized = description.lower()
    if not any(keyword in normalized for keyword in CC_CHARGE_KEYWORDS):
        return None
    groups = _FOUR_DIGITS.findall(description)
    return groups[-1] if groups else None


@dataclass
class CCBankProposal:
    """Suggested attach of a card purchase group to a bank charge."""

    bank_transaction_id: str
    credit_card_id: str
    charge_date: date
    cc_transaction_ids: list[str]
    total_cc_amount_minor: int
    bank_amount_minor: int
    confidence: int
    days_diff: int

    @property
    def discrepancy_minor(self) -> int:
        return self.bank_amount_minor - self.total_cc_amount_minor


@dataclass
class CCBankSummary:
    """Totals across aggregates."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total_cc_transactions: int = 0
    total_discrepancy_minor: int = 0
    by_status: dict[str, int] = field(default_factory=dict)


class CCBankReconciler:
    """Attaches card purchases to bank charges and keeps aggregates current."""

    def __init__(self, store: MatchStore, config: "Config"):
        self.store = store
        self.config = config

    # === Attach / unmatch ===

    def attach(
        self,
        bank_transaction_id: str,
        cc_transaction_ids: Iterable[str],
        confidence: int | None = None,
    ) -> CCBankMatchResult:
        """
        Attach card purchases to a bank charge.

        Creates the aggregate (status pending) on first attach. Rows already
        under this charge are left as they are. When accepting a proposal,
        pass its confidence to record it on the aggregate.

        Raises:
            ValidationError: Bad ids or wrong transaction types
            ConflictError: A purchase is attached to a different charge
            NotFoundError: Bank charge or a purchase does not exist
        """
        bank_transaction_id = require_id(bank_transaction_id, "bank_transaction_id")
        cc_ids = self._require_ids(cc_transaction_ids)
        if confidence is not None and not 0 <= confidence <= 100:
            raise ValidationError(f"confidence must be between 0 and 100, got {confidence}")

        with self.store.atomic():
            bank = self._load_bank_charge(bank_transaction_id)
            for cc_id in cc_ids:
                cc = self.store.get_transaction(cc_id)
                if cc is None:
                    raise NotFoundError("Transaction", cc_id)
                if cc.transaction_type != TransactionType.CC_PURCHASE:
                    raise ValidationError(f"Transaction {cc_id} is not a cc_purchase")
                if cc.parent_bank_charge_id not in (None, bank_transaction_id):
                    raise ConflictError(
                        f"Transaction {cc_id} is already attached to bank charge "
                        f"{cc.parent_bank_charge_id}"
                    )

            updated = self.store.set_parent_bank_charge(cc_ids, bank_transaction_id)
            if updated != len(cc_ids):
                raise ConflictError("Card purchases changed while attaching; retry")

            attached = self.store.list_cc_purchases_for_charge(bank_transaction_id)
            existing = self.store.get_cc_match_for_bank(bank_transaction_id)
            if existing is None:
                result = self._new_aggregate(bank, attached)
            else:
                result = self._recompute(existing, bank, attached)
            if confidence is not None:
                result.match_confidence = confidence
            self.store.save_cc_match(result)

        logger.info(
            "Attached %d card purchase(s) to bank charge %s: %d total, discrepancy %d",
            len(cc_ids),
            bank_transaction_id,
            result.cc_transaction_count,
            result.discrepancy_minor,
        )
        return result

    def unmatch(
        self, match_id: str, cc_transaction_ids: Iterable[str]
    ) -> CCBankMatchResult | None:
        """
        Detach card purchases from an aggregate.

        Returns:
            The updated aggregate, or None when no purchases remain and the
            aggregate was deleted

        Raises:
            NotFoundError: Unknown aggregate
            ValidationError: A purchase is not attached to this aggregate
        """
        match_id = require_id(match_id, "match_id")
        cc_ids = self._require_ids(cc_transaction_ids)

        with self.store.atomic():
            existing = self.store.get_cc_match(match_id)
            if existing is None:
                raise NotFoundError("CC bank match", match_id)

            bank_id = existing.bank_transaction_id
            attached_ids = {tx.id for tx in self.store.list_cc_purchases_for_charge(bank_id)}
            stray = [cc_id for cc_id in cc_ids if cc_id not in attached_ids]
            if stray:
                raise ValidationError(
                    f"Not attached to bank charge {bank_id}: {', '.join(stray)}"
                )

            self.store.clear_parent_bank_charge(cc_ids, bank_id)
            remaining = self.store.list_cc_purchases_for_charge(bank_id)
            if not remaining:
                self.store.delete_cc_match(match_id)
                result = None
            else:
                bank = self._load_bank_charge(bank_id)
                result = self._recompute(existing, bank, remaining)
                self.store.save_cc_match(result)

        if result is None:
            logger.info("Unmatched all purchases of %s; aggregate deleted", match_id)
        else:
            logger.info(
                "Unmatched %d purchase(s) from %s; %d remain",
                len(cc_ids),
                match_id,
                result.cc_transaction_count,
            )
        return result

    def set_status(self, match_id: str, status: AggregateStatus) -> CCBankMatchResult:
        """
        Approve or reject a pending aggregate.

        Raises:
            NotFoundError: Unknown aggregate
            ValidationError: Transition not allowed from the current status
        """
        match_id = require_id(match_id, "match_id")
        status = AggregateStatus(status)

        with self.store.atomic():
            existing = self.store.get_cc_match(match_id)
            if existing is None:
                raise NotFoundError("CC bank match", match_id)
            if existing.status == status:
                return existing
            if existing.status != AggregateStatus.PENDING or status == AggregateStatus.PENDING:
                raise ValidationError(
                    f"Cannot change status from {existing.status.value} to {status.value}"
                )
            existing.status = status
            self.store.save_cc_match(existing)

        logger.info("CC bank match %s -> %s", match_id, status.value)
        return existing

    # === Queries ===

    def get_match(self, match_id: str) -> CCBankMatchResult:
        """Raises NotFoundError for an unknown aggregate."""
        result = self.store.get_cc_match(require_id(match_id, "match_id"))
        if result is None:
            raise NotFoundError("CC bank match", match_id)
        return result

    def list_matches(self, status: AggregateStatus | None = None) -> list[CCBankMatchResult]:
        return self.store.list_cc_matches(status)

    def summarize(self) -> CCBankSummary:
        summary = CCBankSummary()
        for result in self.store.list_cc_matches():
            summary.total += 1
            summary.total_cc_transactions += result.cc_transaction_count
            summary.total_discrepancy_minor += result.discrepancy_minor
            summary.by_status[result.status.value] = summary.by_status.get(result.status.value, 0) + 1
        summary.pending = summary.by_status.get(AggregateStatus.PENDING.value, 0)
        summary.approved = summary.by_status.get(AggregateStatus.APPROVED.value, 0)
        summary.rejected = summary.by_status.get(AggregateStatus.REJECTED.value, 0)
        return summary

    # === Proposals ===

    def propose_matches(self) -> list[CCBankProposal]:
        """
        Suggest which unattached purchase groups belong to which bank charge.

        Purchases are grouped by (card, charge date). Each group is paired
        with the bank charge of the same card within the date tolerance that
        scores highest (date proximity and amount similarity). Nothing is
        written; use attach() to accept a proposal.
        """
        tolerance_days = self.config.cc_bank.date_tolerance_days
        tolerance_pct = self.config.cc_bank.amount_tolerance_percent

        groups: dict[tuple[str, date], list[Transaction]] = defaultdict(list)
        for tx in self.store.list_unattached_cc_purchases():
            if tx.credit_card_id:
                groups[(tx.credit_card_id, tx.charge_date)].append(tx)
        if not groups:
            return []

        charges = [
            bank
            for bank in self.store.list_transactions(types=[TransactionType.BANK_CC_CHARGE])
            if self.store.get_cc_match_for_bank(bank.id) is None
        ]

        proposals = []
        for (card_id, charge_date), purchases in sorted(groups.items()):
            total = sum(abs(tx.amount_minor) for tx in purchases)
            best: CCBankProposal | None = None
            for bank in charges:
                if not self._card_matches(bank, card_id):
                    continue
                days_diff = abs((bank.date - charge_date).days)
                if days_diff > tolerance_days:
                    continue
                bank_amount = abs(bank.amount_minor)
                discrepancy_pct = (
                    abs(bank_amount - total) / bank_amount * 100 if bank_amount else 100.0
                )
                date_score = max(0.0, 100 - days_diff / max(tolerance_days, 1) * 50)
                if tolerance_pct > 0:
                    amount_score = max(0.0, 100 - discrepancy_pct / tolerance_pct * 50)
                else:
                    amount_score = 100.0 if discrepancy_pct == 0 else 0.0
                confidence = int(
                    round(
                        date_score * PROPOSAL_DATE_WEIGHT
                        + amount_score * (1 - PROPOSAL_DATE_WEIGHT)
                    )
                )
                if best is None or confidence > best.confidence:
                    best = CCBankProposal(
                        bank_transaction_id=bank.id,
                        credit_card_id=card_id,
                        charge_date=charge_date,
                        cc_transaction_ids=[tx.id for tx in purchases],
                        total_cc_amount_minor=total,
                        bank_amount_minor=bank_amount,
                        confidence=confidence,
                        days_diff=days_diff,
                    )
            if best is not None:
                proposals.append(best)

        logger.info("Proposed %d CC ↔ bank match(es) from %d group(s)", len(proposals), len(groups))
        return proposals

    # === Internals ===

    @staticmethod
    def _card_matches(bank: Transaction, card_id: str) -> bool:
        if bank.credit_card_id:
            return bank.credit_card_id == card_id
        last_four = detect_card_last_four(bank.description)
        return last_four is not None and card_id.endswith(last_four)

    @staticmethod
    def _require_ids(ids: Iterable[str]) -> list[str]:
        if isinstance(ids, str):
            ids = [ids]
        cleaned = [require_id(i, "cc_transaction_id") for i in ids]
        if not cleaned:
            raise ValidationError("At least one cc_transaction_id is required")
        return list(dict.fromkeys(cleaned))

    def _load_bank_charge(self, bank_transaction_id: str) -> Transaction:
        bank = self.store.get_transaction(bank_transaction_id)
        if bank is None:
            raise NotFoundError("Transaction", bank_transaction_id)
        if bank.transaction_type != TransactionType.BANK_CC_CHARGE:
            raise ValidationError(f"Transaction {bank_transaction_id} is not a bank_cc_charge")
        return bank

    def _new_aggregate(self, bank: Transaction, attached: list[Transaction]) -> CCBankMatchResult:
        result = CCBankMatchResult(
            id=uuid.uuid4().hex,
            bank_transaction_id=bank.id,
            credit_card_id=bank.credit_card_id or (attached[0].credit_card_id if attached else None),
            charge_date=bank.date,
            bank_amount_minor=abs(bank.amount_minor),
            total_cc_amount_minor=0,
            cc_transaction_count=0,
            discrepancy_minor=0,
            discrepancy_percent=0.0,
            status=AggregateStatus.PENDING,
        )
        return self._recompute(result, bank, attached)

    @staticmethod
    def _recompute(
        result: CCBankMatchResult, bank: Transaction, attached: list[Transaction]
    ) -> CCBankMatchResult:
        """Totals from the rows attached right now; status is left untouched."""
        bank_amount = abs(bank.amount_minor)
        total = sum(abs(tx.amount_minor) for tx in attached)
        discrepancy = bank_amount - total

        result.bank_amount_minor = bank_amount
        result.total_cc_amount_minor = total
        result.cc_transaction_count = len(attached)
        result.discrepancy_minor = discrepancy
        result.discrepancy_percent = (
            round(abs(discrepancy) / bank_amount * 100, 2) if bank_amount else 0.0
        )
        return result

    def to_dict(self, result: CCBankMatchResult) -> dict[str, Any]:
        """Aggregate plus its attached purchase ids."""
        data = result.to_dict()
        data["cc_transaction_ids"] = [
            tx.id for tx in self.store.list_cc_purchases_for_charge(result.bank_transaction_id)
        ]
        return data
