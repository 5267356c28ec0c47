"""Tests for exchange rate lookup."""

from datetime import date

import pytest

from invoice_matcher.errors import ExternalDependencyError
from invoice_matcher.rates import (
    ExchangeRateProvider,
    RateQuote,
    SessionRateCache,
    StoreRateProvider,
    TableRateProvider,
    convert_minor,
)
from invoice_matcher.schemas.entities import ExchangeRate


class CountingProvider(ExchangeRateProvider):
    """Returns a fixed USD rate and counts lookups."""

    def __init__(self):
        self.calls = 0

    def rates_for(self, on_date, currencies):
        self.calls += 1
        return {"USD": RateQuote(rate=3.7, rate_date=on_date)}


class BrokenStore:
    """Store whose rate table cannot be read."""

    def find_exchange_rate(self, currency, on_or_before, earliest):
        raise OSError("database is locked")


class TestConvertMinor:
    """Tests for minor-unit conversion."""

    @pytest.mark.parametrize(
        "amount,rate,expected",
        [
            (1000, 3.7, 3700),
            (1, 3.65, 4),  # 3.65 rounds half-up
            (333, 0.015, 5),
            (0, 3.7, 0),
        ],
    )
    def test_convert(self, amount, rate, expected):
        assert convert_minor(amount, rate) == expected


class TestTableRateProvider:
    """Tests for the in-memory provider."""

    @pytest.fixture
    def provider(self):
        return TableRateProvider(
            [
                ExchangeRate("USD", date(2024, 2, 29), 3.7),
                ExchangeRate("JPY", date(2024, 3, 1), 2.5, unit=100),
            ],
            max_fallback_days=3,
        )

    def test_falls_back_to_earlier_day(self, provider):
        """Weekend dates use the last published rate."""
        rates = provider.rates_for(date(2024, 3, 2), ["usd"])
        assert rates["USD"].rate_date == date(2024, 2, 29)

    def test_unit_is_normalized(self, provider):
        """Rates quoted per 100 units are reported per unit."""
        rates = provider.rates_for(date(2024, 3, 1), ["JPY"])
        assert rates["JPY"].rate == pytest.approx(0.025)

    def test_outside_fallback_window(self, provider):
        """Too old a rate is not used; nothing resolvable gives None."""
        assert provider.rates_for(date(2024, 3, 10), ["USD"]) is None

    def test_partial_result(self, provider):
        """Unknown currencies are simply absent from the map."""
        rates = provider.rates_for(date(2024, 3, 1), ["USD", "EUR"])
        assert set(rates) == {"USD"}


class TestStoreRateProvider:
    """Tests for the store-backed provider."""

    def test_reads_stored_rates(self, store):
        store.save_exchange_rate(ExchangeRate("EUR", date(2024, 2, 28), 4.0))
        provider = StoreRateProvider(store, base_currency="ILS", max_fallback_days=7)

        rates = provider.rates_for(date(2024, 3, 1), ["EUR", "ILS"])

        assert set(rates) == {"EUR"}
        assert rates["EUR"].rate == pytest.approx(4.0)
        assert rates["EUR"].rate_date == date(2024, 2, 28)

    def test_store_failure_is_dependency_error(self):
        provider = StoreRateProvider(BrokenStore())
        with pytest.raises(ExternalDependencyError):
            provider.rates_for(date(2024, 3, 1), ["USD"])


class TestSessionRateCache:
    """Tests for per-session caching."""

    def test_same_key_fetched_once(self):
        """Currency order and case do not change the cache key."""
        inner = CountingProvider()
        cache = SessionRateCache(inner)

        cache.rates_for(date(2024, 3, 1), ["USD", "EUR"])
        cache.rates_for(date(2024, 3, 1), ["eur", "usd"])
        cache.rates_for(date(2024, 3, 2), ["USD", "EUR"])

        assert inner.calls == 2
        assert cache.hits == 1
        assert cache.misses == 2

    def test_failure_degrades_to_none(self):
        """Provider errors become 'no rates' and are cached."""
        cache = SessionRateCache(StoreRateProvider(BrokenStore()))

        assert cache.rates_for(date(2024, 3, 1), ["USD"]) is None
        assert cache.rates_for(date(2024, 3, 1), ["USD"]) is None
        assert cache.hits == 1
