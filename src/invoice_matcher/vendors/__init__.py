"""
Vendor resolution: aliases first, merchant parser fallback.
"""

from .resolver import (
    AliasVendorResolver,
    VendorResolution,
    VendorResolver,
    find_matching_aliases,
    matches_alias_pattern,
    parse_merchant_name,
    tokenize,
)

__all__ = [
    "AliasVendorResolver",
    "VendorResolution",
    "VendorResolver",
    "find_matching_aliases",
    "matches_alias_pattern",
    "parse_merchant_name",
    "tokenize",
]
