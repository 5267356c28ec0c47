"""Tests for batch auto-matching of invoice line items."""

from datetime import date

import pytest

from invoice_matcher.errors import ExternalDependencyError, NotFoundError
from invoice_matcher.linking import LinkResult
from invoice_matcher.matching import AutoMatchOrchestrator, AutoMatchStatus
from invoice_matcher.rates import ExchangeRateProvider
from invoice_matcher.schemas.entities import (
    ExchangeRate,
    MatchMethod,
    MatchStatus,
)


class FailingRateProvider(ExchangeRateProvider):
    """Rate source that is always down."""

    def __init__(self):
        self.calls = 0

    def rates_for(self, on_date, currencies):
        self.calls += 1
        raise ExternalDependencyError("rate service unavailable")


@pytest.fixture
def seeded_store(store, aws_alias, make_invoice, make_line_item, make_transaction):
    """
    Invoice with four line items:
    - li-1: exact amount/date/vendor match for tx-1
    - li-2: 3% off, vendor mismatch (scores below review)
    - li-3: 2.5% off, alias vendor, 5 days apart (review candidate)
    - li-4: already linked
    """
    store.save_vendor_alias(aws_alias)
    store.save_invoice(make_invoice())
    store.save_transaction(make_transaction("tx-1"))
    store.save_transaction(
        make_transaction("tx-2", date=date(2024, 3, 5), amount_minor=-5150, description="IKEA NETANYA")
    )
    store.save_transaction(
        make_transaction(
            "tx-3", date=date(2024, 3, 6), amount_minor=-2050, description="AMZN AWS SUPPORT"
        )
    )
    store.save_line_item(make_line_item("li-1"))
    store.save_line_item(make_line_item("li-2", description="Office chairs", total_minor=5000))
    store.save_line_item(make_line_item("li-3", description="Support plan", total_minor=2000))
    store.save_line_item(
        make_line_item(
            "li-4",
            total_minor=999,
            transaction_id="tx-1",
            match_status=MatchStatus.MATCHED,
            match_method=MatchMethod.MANUAL,
        )
    )
    return store


@pytest.fixture
def orchestrator(seeded_store, config):
    return AutoMatchOrchestrator(seeded_store, config)


class TestClassify:
    """Tests for confidence tiers."""

    @pytest.mark.parametrize(
        "score,expected",
        [
            (95, AutoMatchStatus.AUTO_MATCHED),
            (85, AutoMatchStatus.AUTO_MATCHED),
            (84, AutoMatchStatus.CANDIDATE),
            (60, AutoMatchStatus.CANDIDATE),
            (50, AutoMatchStatus.CANDIDATE),
            (49, AutoMatchStatus.NO_MATCH),
            (30, AutoMatchStatus.NO_MATCH),
        ],
    )
    def test_classify(self, store, config, score, expected):
        assert AutoMatchOrchestrator(store, config).classify(score) == expected

    def test_thresholds_come_from_config(self, store, config):
        """Raising the auto threshold demotes a score to candidate."""
        config.matching.auto_match_threshold = 96
        assert AutoMatchOrchestrator(store, config).classify(95) == AutoMatchStatus.CANDIDATE


class TestAutoMatchInvoice:
    """Tests for auto_match_invoice()."""

    def test_buckets(self, orchestrator):
        """Every unlinked line item lands in exactly one bucket."""
        result = orchestrator.auto_match_invoice("inv-1")
        by_id = {r.line_item_id: r for r in result.results}

        assert result.total_line_items == 4
        assert set(by_id) == {"li-1", "li-2", "li-3"}
        assert result.summary.auto_matched == 1
        assert result.summary.candidate == 1
        assert result.summary.no_match == 1
        assert result.summary.skipped_linked == 1
        assert result.summary.errors == 0

        assert by_id["li-1"].status == AutoMatchStatus.AUTO_MATCHED
        assert by_id["li-1"].confidence == 100
        assert by_id["li-1"].best_match.transaction_id == "tx-1"
        assert by_id["li-1"].suggested_method == MatchMethod.RULE_AMOUNT_DATE

        assert by_id["li-2"].status == AutoMatchStatus.NO_MATCH
        assert by_id["li-2"].best_match is None

        assert by_id["li-3"].status == AutoMatchStatus.CANDIDATE
        assert by_id["li-3"].confidence == 80
        assert by_id["li-3"].suggested_method == MatchMethod.RULE_FUZZY

    def test_auto_match_writes_nothing(self, orchestrator, seeded_store):
        """Scoring an invoice never links anything."""
        orchestrator.auto_match_invoice("inv-1")
        assert seeded_store.get_line_item("li-1").transaction_id is None

    def test_parallel_matches_sequential(self, seeded_store, config):
        """Worker count does not change the outcome."""
        sequential = AutoMatchOrchestrator(seeded_store, config).auto_match_invoice("inv-1")
        config.matching.max_workers = 4
        parallel = AutoMatchOrchestrator(seeded_store, config).auto_match_invoice("inv-1")

        assert [r.to_dict() for r in parallel.results] == [
            r.to_dict() for r in sequential.results
        ]

    def test_unknown_invoice(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.auto_match_invoice("inv-404")

    def test_line_item_without_any_date(self, store, config, make_invoice, make_line_item):
        """No date anywhere: reported per item, not raised."""
        store.save_invoice(make_invoice(invoice_date=None))
        store.save_line_item(make_line_item(transaction_date=None))

        result = AutoMatchOrchestrator(store, config).auto_match_invoice("inv-1")

        assert result.results[0].status == AutoMatchStatus.NO_MATCH
        assert result.results[0].error == "No date on line item or invoice"
        assert result.summary.errors == 1


class TestForeignCurrency:
    """Tests for line items in a foreign currency."""

    @pytest.fixture
    def usd_store(self, store, aws_alias, make_invoice, make_line_item, make_transaction):
        store.save_vendor_alias(aws_alias)
        store.save_invoice(make_invoice(currency="USD"))
        store.save_line_item(make_line_item(currency="USD", total_minor=1000))
        store.save_transaction(make_transaction(date=date(2024, 3, 1), amount_minor=-3700))
        return store

    def test_stored_rate_is_used(self, usd_store, config):
        """Rate from the nearest earlier day converts the line amount."""
        usd_store.save_exchange_rate(ExchangeRate("USD", date(2024, 2, 29), 3.7))

        result = AutoMatchOrchestrator(usd_store, config).auto_match_invoice("inv-1")
        item = result.results[0]

        assert item.status == AutoMatchStatus.AUTO_MATCHED
        assert item.confidence == 97
        details = item.best_match.score.conversion_details
        assert details.rate_date == date(2024, 2, 29)

    def test_missing_rate_means_no_match(self, usd_store, config):
        """Without a rate the only candidate is disqualified."""
        result = AutoMatchOrchestrator(usd_store, config).auto_match_invoice("inv-1")
        assert result.results[0].status == AutoMatchStatus.NO_MATCH

    def test_rate_provider_failure_degrades(self, usd_store, config):
        """A failing provider is treated as no rates, once per session key."""
        provider = FailingRateProvider()
        orchestrator = AutoMatchOrchestrator(usd_store, config, rate_provider=provider)

        result = orchestrator.auto_match_invoice("inv-1")

        assert result.results[0].status == AutoMatchStatus.NO_MATCH
        assert provider.calls == 1


class TestApplyAutoMatches:
    """Tests for apply_auto_matches_for_invoice()."""

    def test_apply_links_auto_matches_only(self, orchestrator, seeded_store):
        """Only auto_matched items are linked, with method and confidence."""
        batch = orchestrator.apply_auto_matches_for_invoice("inv-1")

        assert batch.applied == 1
        assert batch.failed == 0
        item = seeded_store.get_line_item("li-1")
        assert item.transaction_id == "tx-1"
        assert item.match_method == MatchMethod.RULE_AMOUNT_DATE
        assert item.match_confidence == 100
        assert seeded_store.get_line_item("li-3").transaction_id is None

    def test_apply_is_idempotent(self, orchestrator):
        """A second run finds nothing new to apply."""
        orchestrator.apply_auto_matches_for_invoice("inv-1")
        again = orchestrator.apply_auto_matches_for_invoice("inv-1")
        assert again.applied == 0
        assert again.results == []

    def test_one_failure_does_not_abort_batch(
        self, store, config, aws_alias, make_invoice, make_line_item, make_transaction
    ):
        """An unexpected error on one item is recorded; the rest are linked."""
        store.save_vendor_alias(aws_alias)
        store.save_invoice(make_invoice())
        store.save_transaction(make_transaction("tx-1"))
        store.save_transaction(make_transaction("tx-5", amount_minor=-7000))
        store.save_line_item(make_line_item("li-1"))
        store.save_line_item(make_line_item("li-5", total_minor=7000))

        class FlakyLinkManager:
            def link(self, line_item_id, transaction_id, method, confidence):
                if line_item_id == "li-1":
                    raise RuntimeError("disk full")
                return LinkResult.ok(line_item_id, transaction_id)

        orchestrator = AutoMatchOrchestrator(store, config, link_manager=FlakyLinkManager())
        batch = orchestrator.apply_auto_matches_for_invoice("inv-1")

        assert batch.applied == 1
        assert batch.failed == 1
        failed = [o for o in batch.results if not o.success]
        assert failed[0].line_item_id == "li-1"
        assert failed[0].error == "disk full"
