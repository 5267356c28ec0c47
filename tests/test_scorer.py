"""Tests for the line item ↔ transaction score engine."""

from __future__ import annotations

import copy
from datetime import date

import pytest

from invoice_matcher.config import ScoringConfig
from invoice_matcher.matching.scorer import MatchScore, ScoreEngine, ScoringContext, score_match
from invoice_matcher.rates.provider import RateQuote
from invoice_matcher.schemas.entities import TransactionType


@pytest.fixture
def context(make_line_item, make_invoice, aws_alias) -> ScoringContext:
    """Line item of an AWS invoice with the AWS alias available."""
    return ScoringContext(
        line_item=make_line_item(),
        invoice=make_invoice(),
        vendor_aliases=[aws_alias],
    )


class TestMatchScore:
    """Tests for the MatchScore result object."""

    def test_confidence_zero_when_disqualified(self):
        """Disqualification forces reported confidence to 0."""
        score = MatchScore(transaction_id="tx", total=90)
        score.disqualify("Amount differs")
        assert score.confidence == 0
        assert score.total == 90

    def test_first_disqualify_reason_wins(self):
        """Later reasons do not overwrite the first."""
        score = MatchScore(transaction_id="tx")
        score.disqualify("first")
        score.disqualify("second")
        assert score.disqualify_reason == "first"

    def test_to_dict_has_audit_fields(self):
        """Serialized score carries breakdown, penalties and reasons."""
        data = MatchScore(transaction_id="tx", total=42).to_dict()
        assert data["transaction_id"] == "tx"
        assert data["confidence"] == 42
        assert set(data["breakdown"]) == {"reference", "amount", "date", "vendor", "currency"}
        assert set(data["penalties"]) == {"vendor_mismatch", "currency_unconvertible"}
        assert data["conversion_details"] is None


class TestScenarios:
    """End-to-end scoring scenarios."""

    def test_exact_amount_next_day_alias_vendor_scores_100(
        self, context, make_transaction
    ):
        """Same amount, one day apart, alias-resolved vendor: top score."""
        result = score_match(make_transaction(), context)

        assert not result.is_disqualified
        assert result.total == 100
        assert result.confidence == 100
        assert result.breakdown.vendor == pytest.approx(25)
        assert any("alias" in reason.lower() for reason in result.match_reasons)

    def test_twenty_percent_off_is_disqualified(self, context, make_transaction):
        """A 20% amount gap is outside the hard bound."""
        result = score_match(make_transaction(amount_minor=-8000), context)

        assert result.is_disqualified
        assert result.confidence == 0
        assert "20.0%" in result.disqualify_reason

    def test_identical_amount_same_day_outscores_later_date(
        self, context, make_transaction
    ):
        """Closer date ranks at least as high with everything else equal."""
        same_day = score_match(make_transaction(date=date(2024, 3, 1)), context)
        week_later = score_match(make_transaction(date=date(2024, 3, 8)), context)
        assert same_day.total > week_later.total


class TestAmountAxis:
    """Tests for amount scoring."""

    def test_amount_points_strictly_decrease_with_difference(
        self, context, make_transaction
    ):
        """Larger gaps always earn fewer amount points."""
        amounts = [10000, 10050, 10200, 10500, 11000, 11400]
        points = [
            score_match(make_transaction(amount_minor=-a), context).breakdown.amount
            for a in amounts
        ]
        assert points == sorted(points, reverse=True)
        assert len(set(points)) == len(points)

    def test_exact_amount_gets_full_weight(self, context, make_transaction):
        """Exact match earns the full amount weight."""
        result = score_match(make_transaction(), context)
        assert result.breakdown.amount == pytest.approx(30)
        assert "Exact amount match" in result.match_reasons

    def test_zero_decay_rewards_exact_amounts_only(self, context, make_transaction):
        engine = ScoreEngine(ScoringConfig(amount_decay_percent=0.0))

        assert engine.score(make_transaction(), context).breakdown.amount == pytest.approx(30)
        assert engine.score(make_transaction(amount_minor=-10050), context).breakdown.amount == 0

    def test_zero_line_amount_warns(self, make_line_item, make_invoice, make_transaction):
        """Zero amounts are not compared."""
        ctx = ScoringContext(line_item=make_line_item(total_minor=0), invoice=make_invoice())
        result = score_match(make_transaction(), ctx)
        assert result.breakdown.amount == 0
        assert any("Zero amount" in w for w in result.warnings)

    def test_foreign_amount_compared_natively(
        self, make_line_item, make_invoice, make_transaction
    ):
        """USD line vs USD foreign amount needs no rate."""
        ctx = ScoringContext(
            line_item=make_line_item(currency="USD", total_minor=2500),
            invoice=make_invoice(currency="USD"),
        )
        tx = make_transaction(amount_minor=-9250, foreign_currency="USD", foreign_amount_minor=-2500)
        result = score_match(tx, ctx)

        assert not result.is_disqualified
        assert result.breakdown.amount == pytest.approx(30)
        assert result.breakdown.currency == pytest.approx(5)
        assert result.conversion_details is None


class TestCurrencyAxis:
    """Tests for currency conversion and the currency axis."""

    def test_conversion_with_rate(self, make_line_item, make_invoice, make_transaction, aws_alias):
        """Foreign line converted to base at the supplied rate."""
        ctx = ScoringContext(
            line_item=make_line_item(currency="USD", total_minor=1000),
            invoice=make_invoice(currency="USD"),
            vendor_aliases=[aws_alias],
            exchange_rates={"USD": RateQuote(rate=3.7, rate_date=date(2024, 2, 29))},
        )
        result = score_match(make_transaction(amount_minor=-3700, date=date(2024, 3, 1)), ctx)

        assert not result.is_disqualified
        assert result.breakdown.amount == pytest.approx(30)
        assert result.breakdown.currency == pytest.approx(2)
        details = result.conversion_details
        assert details.converted_minor == 3700
        assert details.rate_date == date(2024, 2, 29)
        assert details.rate_date_differs is True
        assert any("2024-02-29" in w for w in result.warnings)
        assert result.total == 97

    def test_missing_rate_disqualifies(self, make_line_item, make_invoice, make_transaction):
        """No rate means no silent 1:1 assumption."""
        ctx = ScoringContext(
            line_item=make_line_item(currency="EUR", total_minor=10000),
            invoice=make_invoice(currency="EUR"),
            exchange_rates=None,
        )
        result = score_match(make_transaction(amount_minor=-10000), ctx)

        assert result.is_disqualified
        assert result.confidence == 0
        assert result.penalties.currency_unconvertible < 0
        assert "Exchange rate unavailable for EUR" in result.warnings
        assert result.breakdown.amount == 0

    def test_same_currency_full_points(self, context, make_transaction):
        """Native currency match earns the currency weight."""
        result = score_match(make_transaction(), context)
        assert result.breakdown.currency == pytest.approx(5)


class TestDateAxis:
    """Tests for date scoring."""

    def test_missing_line_date_gets_half_credit(
        self, make_line_item, make_invoice, make_transaction
    ):
        """No date on line item or invoice: half the date weight."""
        ctx = ScoringContext(
            line_item=make_line_item(transaction_date=None),
            invoice=make_invoice(invoice_date=None),
        )
        result = score_match(make_transaction(), ctx)
        assert result.breakdown.date == pytest.approx(15)

    def test_value_date_used_when_closer(self, context, make_transaction):
        """The closer of date and value_date counts."""
        tx = make_transaction(date=date(2024, 3, 20), value_date=date(2024, 3, 1))
        result = score_match(tx, context)
        assert result.date_distance_days == 0
        assert result.breakdown.date == pytest.approx(30)

    def test_decay_between_full_and_zero(self, context, make_transaction):
        """Points decay linearly after the full-credit window."""
        two_days = score_match(make_transaction(date=date(2024, 3, 3)), context)
        ten_days = score_match(make_transaction(date=date(2024, 3, 11)), context)
        twelve_days = score_match(make_transaction(date=date(2024, 3, 13)), context)

        assert two_days.breakdown.date == pytest.approx(27)
        assert ten_days.breakdown.date == pytest.approx(3)
        assert twelve_days.breakdown.date == 0
        assert not twelve_days.is_disqualified

    def test_beyond_cutoff_disqualifies(self, context, make_transaction):
        """Dates further apart than the hard cutoff disqualify the pair."""
        result = score_match(make_transaction(date=date(2024, 6, 1)), context)
        assert result.is_disqualified
        assert "days apart" in result.disqualify_reason


class TestReferenceAxis:
    """Tests for reference scoring."""

    def test_absent_reference_adds_no_reason(self, context, make_transaction):
        """No reference data: axis unscored and no reason invented."""
        result = score_match(make_transaction(), context)
        assert result.breakdown.reference == 0
        assert not any("eference" in reason for reason in result.match_reasons)

    def test_unmatched_reference_adds_no_reason(
        self, make_line_item, make_invoice, make_transaction
    ):
        """Reference on both sides that does not match contributes nothing."""
        ctx = ScoringContext(
            line_item=make_line_item(reference="INV-777"), invoice=make_invoice()
        )
        result = score_match(make_transaction(reference="XYZ-1"), ctx)
        assert result.breakdown.reference == 0
        assert not any("eference" in reason for reason in result.match_reasons)

    def test_exact_reference_match(self, make_line_item, make_invoice, make_transaction):
        """Equal reference earns the full reference weight."""
        ctx = ScoringContext(
            line_item=make_line_item(reference="INV-2024-001"), invoice=make_invoice()
        )
        result = score_match(make_transaction(reference="inv-2024-001"), ctx)
        assert result.breakdown.reference == pytest.approx(10)
        assert "Reference match (INV-2024-001)" in result.match_reasons

    def test_invoice_number_found_in_description(
        self, make_line_item, make_invoice, make_transaction
    ):
        """Invoice number inside the bank description earns partial points."""
        ctx = ScoringContext(
            line_item=make_line_item(), invoice=make_invoice(invoice_number="A-5531")
        )
        result = score_match(make_transaction(description="AMZN AWS A-5531"), ctx)
        assert result.breakdown.reference == pytest.approx(8)


class TestVendorAxis:
    """Tests for vendor scoring."""

    def test_mismatch_is_penalized(self, make_line_item, make_invoice, make_transaction):
        """Both sides known and different: negative penalty, not just zero."""
        ctx = ScoringContext(
            line_item=make_line_item(description="Pipe repair"),
            invoice=make_invoice(vendor_name="Acme Plumbing"),
        )
        result = score_match(make_transaction(description="GROCERY STORE TLV"), ctx)
        assert result.breakdown.vendor == 0
        assert result.penalties.vendor_mismatch < 0

    def test_single_token_match(self, make_line_item, make_invoice, make_transaction):
        """One shared significant token earns most of the vendor weight."""
        ctx = ScoringContext(
            line_item=make_line_item(description="Monthly plan"),
            invoice=make_invoice(vendor_name="Spotify Ltd"),
        )
        result = score_match(make_transaction(description="SPOTIFY P1234"), ctx)
        assert result.breakdown.vendor == pytest.approx(20)
        assert result.penalties.vendor_mismatch == 0

    def test_no_vendor_data_is_not_penalized(
        self, make_line_item, make_invoice, make_transaction
    ):
        """Missing vendor text on one side is neutral."""
        ctx = ScoringContext(
            line_item=make_line_item(description=None), invoice=make_invoice(vendor_name=None)
        )
        result = score_match(make_transaction(), ctx)
        assert result.penalties.vendor_mismatch == 0


class TestDisqualifiers:
    """Tests for hard disqualifiers."""

    def test_income_transaction(self, context, make_transaction):
        """Income rows never match expense line items."""
        result = score_match(make_transaction(is_income=True), context)
        assert result.is_disqualified
        assert result.confidence == 0

    def test_bank_card_charge_not_eligible(self, context, make_transaction):
        """Aggregated card payoffs are not line item candidates."""
        result = score_match(
            make_transaction(transaction_type=TransactionType.BANK_CC_CHARGE), context
        )
        assert result.is_disqualified
        assert "not eligible" in result.disqualify_reason

    def test_income_invoice(self, make_line_item, make_invoice, make_transaction):
        """Income invoices are not matched against expenses."""
        ctx = ScoringContext(line_item=make_line_item(), invoice=make_invoice(is_income=True))
        assert score_match(make_transaction(), ctx).is_disqualified


class TestEngineProperties:
    """Properties that hold for every input."""

    def test_total_is_clamped(self, make_line_item, make_invoice, make_transaction):
        """Heavy penalties never push the total below 0."""
        ctx = ScoringContext(
            line_item=make_line_item(description="Pipe repair"),
            invoice=make_invoice(vendor_name="Acme Plumbing"),
        )
        tx = make_transaction(description="GROCERY STORE TLV", date=date(2024, 3, 25), amount_minor=-11400)
        result = score_match(tx, ctx)
        assert 0 <= result.total <= 100

    def test_scoring_is_pure_and_deterministic(self, context, make_transaction):
        """Inputs are not mutated and repeated calls agree."""
        tx = make_transaction()
        tx_before = copy.deepcopy(tx)
        item_before = copy.deepcopy(context.line_item)

        first = score_match(tx, context)
        second = score_match(tx, context)

        assert first.to_dict() == second.to_dict()
        assert tx == tx_before
        assert context.line_item == item_before

    def test_custom_weights_normalize(self, context, make_transaction):
        """Totals stay on a 0-100 scale whatever the weights sum to."""
        scoring = ScoringConfig()
        scoring.weights.vendor = 50
        result = ScoreEngine(scoring).score(make_transaction(), context)
        assert result.total == 100
