"""
Exchange rate capability and per-session caching.
"""

from .provider import (
    ConversionDetails,
    ExchangeRateProvider,
    RateMap,
    RateQuote,
    SessionRateCache,
    StoreRateProvider,
    TableRateProvider,
    convert_minor,
)

__all__ = [
    "ConversionDetails",
    "ExchangeRateProvider",
    "RateMap",
    "RateQuote",
    "SessionRateCache",
    "StoreRateProvider",
    "TableRateProvider",
    "convert_minor",
]
