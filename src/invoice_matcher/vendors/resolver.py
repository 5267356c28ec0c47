"""
Vendor resolution.

Maps raw bank/card descriptions ("AMZN AWS *X12") to a canonical vendor
name. User aliases win, ordered by priority; otherwise the description is
cleaned up by the merchant parser.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..schemas.entities import AliasMatchType, VendorAlias

logger = logging.getLogger(__name__)


# Common merchant abbreviations and their full names
MERCHANT_ABBREVIATIONS = {
    "facebk": "Facebook",
    "fb": "Facebook",
    "amzn": "Amazon",
    "amazn": "Amazon",
    "googl": "Google",
    "msft": "Microsoft",
    "nflx": "Netflix",
    "pp": "PayPal",
    "paypal": "PayPal",
    "godaddy": "GoDaddy",
    "digitalocean": "DigitalOcean",
    "github": "GitHub",
    "gitlab": "GitLab",
    "linkedin": "LinkedIn",
    "tiktok": "TikTok",
    "sendgrid": "SendGrid",
    "quickbooks": "QuickBooks",
    "aws": "Amazon Web Services",
    "gcp": "Google Cloud",
    "azure": "Microsoft Azure",
}

# Bank prefixes stripped before parsing (transfer, payment, standing order, ...)
_DESCRIPTION_PREFIXES = [
    re.compile(r"^העברה\s+ל-?\s*"),
    re.compile(r"^תשלום\s+ל-?\s*"),
    re.compile(r"^הו['\"]{1,2}ק\s*"),
    re.compile(r"^כרטיס אשראי\s*-?\s*"),
    re.compile(r"^חיוב\s*"),
    re.compile(r"^(?:payment to|transfer to|pos|card purchase)\s+", re.IGNORECASE),
]

# Legal suffixes and noise words that say nothing about the vendor
EXCLUDED_VENDOR_WORDS = frozenset(
    {
        "inc", "ltd", "llc", "corp", "corporation", "company", "co",
        "gmbh", "ag", "sa", "pty", "usa", "us", "limited", "plc", "lp", "llp",
        "בעמ", "מעמ", "עוסק", "מורשה", "חשבונית", "קבלה", "תשלום",
        "payment", "invoice", "receipt", "transaction", "purchase",
        "service", "services", "product", "products", "order",
        "the", "and", "for", "from",
    }
)

_TOKEN_STRIP = re.compile(r"[^\w\s]", re.UNICODE)


def parse_merchant_name(description: str) -> str:
    """
    Extract a readable merchant name from a bank/card description.

    Strips bank prefixes and trailing reference codes, then expands known
    abbreviations. Falls back to the trimmed description.
    """
    if not description:
        return ""
    merchant = description.strip()

    for prefix in _DESCRIPTION_PREFIXES:
        merchant = prefix.sub("", merchant)

    # "FACEBK *94ED4BD5F2"
    merchant = re.sub(r"\s*\*[A-Z0-9]+$", "", merchant, flags=re.IGNORECASE)
    # "Upwork -878873220REF"
    merchant = re.sub(r"\s*-[A-Z0-9]{6,}$", "", merchant, flags=re.IGNORECASE)
    # "Vendor - 12345 ..."
    merchant = re.split(r"\s*[-–]\s*\d", merchant)[0]
    # Double spaces usually separate the name from metadata
    merchant = re.split(r"\s{2,}", merchant)[0]
    # "Vendor (ref 123)"
    merchant = re.sub(r"\s*\([^)]*\d+[^)]*\)\s*$", "", merchant)
    merchant = re.sub(r"\s*\*+\s*\d*\s*$", "", merchant)
    merchant = merchant.strip()

    lower = merchant.lower()
    if lower in MERCHANT_ABBREVIATIONS:
        return MERCHANT_ABBREVIATIONS[lower]
    first_word = lower.split()[0] if lower.split() else ""
    if first_word in MERCHANT_ABBREVIATIONS:
        return MERCHANT_ABBREVIATIONS[first_word]

    return merchant or description.strip()


def tokenize(text: str | None) -> list[str]:
    """Split text into significant lowercase vendor tokens."""
    if not text:
        return []
    cleaned = _TOKEN_STRIP.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 2 and t not in EXCLUDED_VENDOR_WORDS]


def matches_alias_pattern(description: str, alias: VendorAlias) -> bool:
    """Check a description against one alias pattern (case-insensitive)."""
    if not description or not alias.alias_pattern:
        return False

    normalized = description.upper().strip()
    pattern = alias.alias_pattern.upper().strip()
    if not pattern:
        return False

    if alias.match_type == AliasMatchType.EXACT:
        return normalized == pattern
    if alias.match_type == AliasMatchType.STARTS_WITH:
        return normalized.startswith(pattern)
    if alias.match_type == AliasMatchType.ENDS_WITH:
        return normalized.endswith(pattern)
    return pattern in normalized


def sort_aliases(aliases: Iterable[VendorAlias]) -> list[VendorAlias]:
    """Highest priority first; stable for equal priorities."""
    return sorted(aliases, key=lambda a: -(a.priority or 0))


def find_matching_aliases(description: str, aliases: Iterable[VendorAlias]) -> list[VendorAlias]:
    """All aliases matching the description, highest priority first."""
    return [a for a in sort_aliases(aliases) if matches_alias_pattern(description, a)]


@dataclass
class VendorResolution:
    """Resolved vendor for a description."""

    display_name: str
    is_resolved: bool  # True when an alias matched
    matched_alias: VendorAlias | None = None


class VendorResolver(ABC):
    """Capability: map a raw description to a canonical vendor name."""

    @abstractmethod
    def resolve(self, description: str) -> str:
        """Return the canonical vendor name (never None)."""
        pass

    def describe(self, description: str) -> VendorResolution:
        """Resolve with provenance. Implementations with aliases override this."""
        return VendorResolution(display_name=self.resolve(description), is_resolved=False)


class AliasVendorResolver(VendorResolver):
    """Resolver backed by user vendor aliases with a parser fallback."""

    def __init__(
        self,
        aliases: Iterable[VendorAlias] = (),
        fallback_parser: Callable[[str], str] = parse_merchant_name,
    ):
        self.aliases = sort_aliases(aliases)
        self.fallback_parser = fallback_parser

    def describe(self, description: str) -> VendorResolution:
        if not description:
            return VendorResolution(display_name="", is_resolved=False)

        for alias in self.aliases:
            if matches_alias_pattern(description, alias):
                logger.debug("Alias %r resolved %r", alias.alias_pattern, description)
                return VendorResolution(
                    display_name=alias.canonical_name,
                    is_resolved=True,
                    matched_alias=alias,
                )

        return VendorResolution(display_name=self.fallback_parser(description), is_resolved=False)

    def resolve(self, description: str) -> str:
        return self.describe(description).display_name
