"""
Exchange rate lookup.

Rates are consumed as already-sourced reference data: base currency units
per one foreign unit, per day. A currency missing from a RateMap is
unconvertible; nothing here ever assumes a 1:1 rate for a foreign currency.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from ..errors import ExternalDependencyError
from ..schemas.entities import ExchangeRate, format_date

if TYPE_CHECKING:
    from ..state_store.base import MatchStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateQuote:
    """Rate for one currency and the day it was published."""

    rate: float
    rate_date: date


RateMap = dict[str, RateQuote]


@dataclass
class ConversionDetails:
    """Audit record for a currency conversion."""

    from_currency: str
    to_currency: str
    original_minor: int
    converted_minor: int
    rate: float
    rate_date: date
    requested_date: date | None = None

    @property
    def rate_date_differs(self) -> bool:
        return self.requested_date is not None and self.rate_date != self.requested_date

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_currency": self.from_currency,
            "to_currency": self.to_currency,
            "original_minor": self.original_minor,
            "converted_minor": self.converted_minor,
            "rate": self.rate,
            "rate_date": format_date(self.rate_date),
            "requested_date": format_date(self.requested_date),
            "rate_date_differs": self.rate_date_differs,
        }


def convert_minor(amount_minor: int, rate: float) -> int:
    """Convert minor units with a rate, rounding half-up to a whole minor unit."""
    converted = Decimal(amount_minor) * Decimal(str(rate))
    return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ExchangeRateProvider(ABC):
    """Capability: rates for a set of currencies on a given day."""

    @abstractmethod
    def rates_for(self, on_date: date, currencies: Iterable[str]) -> RateMap | None:
        """
        Look up rates to the base currency.

        Args:
            on_date: Requested day
            currencies: ISO codes to resolve

        Returns:
            Map of currency -> RateQuote for every resolvable currency,
            or None if none could be resolved
        """
        pass


class TableRateProvider(ExchangeRateProvider):
    """
    In-memory provider over a fixed list of rates.

    Falls back to the nearest earlier published day (weekends, holidays),
    at most max_fallback_days back.
    """

    def __init__(self, rates: Iterable[ExchangeRate], max_fallback_days: int = 7):
        self.max_fallback_days = max_fallback_days
        self._by_currency: dict[str, dict[date, float]] = {}
        for rate in rates:
            self._by_currency.setdefault(rate.currency.upper(), {})[rate.rate_date] = rate.per_unit

    def rates_for(self, on_date: date, currencies: Iterable[str]) -> RateMap | None:
        result: RateMap = {}
        for currency in {c.upper() for c in currencies if c}:
            table = self._by_currency.get(currency, {})
            for offset in range(self.max_fallback_days + 1):
                day = on_date - timedelta(days=offset)
                if day in table:
                    result[currency] = RateQuote(rate=table[day], rate_date=day)
                    break
        return result or None


class StoreRateProvider(ExchangeRateProvider):
    """Provider backed by rates persisted in the state store."""

    def __init__(self, store: "MatchStore", base_currency: str = "ILS", max_fallback_days: int = 7):
        self.store = store
        self.base_currency = base_currency.upper()
        self.max_fallback_days = max_fallback_days

    def rates_for(self, on_date: date, currencies: Iterable[str]) -> RateMap | None:
        result: RateMap = {}
        earliest = on_date - timedelta(days=self.max_fallback_days)
        for currency in sorted({c.upper() for c in currencies if c}):
            if currency == self.base_currency:
                continue
            try:
                stored = self.store.find_exchange_rate(currency, on_date, earliest)
            except ExternalDependencyError:
                raise
            except Exception as e:
                raise ExternalDependencyError(f"Rate lookup failed for {currency}: {e}") from e
            if stored is None:
                logger.warning(
                    "No %s rate between %s and %s", currency, earliest.isoformat(), on_date.isoformat()
                )
                continue
            if stored.rate_date != on_date:
                logger.debug(
                    "Using %s rate from %s for %s", currency, stored.rate_date, on_date.isoformat()
                )
            result[currency] = RateQuote(rate=stored.per_unit, rate_date=stored.rate_date)
        return result or None


class SessionRateCache(ExchangeRateProvider):
    """
    Per-session cache in front of a provider.

    Keyed by (date, currency set). Provider failures degrade to "no rates",
    which the scorer reports as an unconvertible currency.
    """

    def __init__(self, provider: ExchangeRateProvider):
        self.provider = provider
        self._cache: dict[tuple[date, frozenset[str]], RateMap | None] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def rates_for(self, on_date: date, currencies: Iterable[str]) -> RateMap | None:
        key = (on_date, frozenset(c.upper() for c in currencies if c))
        with self._lock:
            if key in self._cache:
                self.hits += 1
                return self._cache[key]

        try:
            rates = self.provider.rates_for(on_date, key[1])
        except ExternalDependencyError as e:
            logger.warning("Exchange rates unavailable for %s: %s", on_date.isoformat(), e)
            rates = None

        with self._lock:
            self.misses += 1
            self._cache[key] = rates
        return rates
