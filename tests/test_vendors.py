"""Tests for vendor resolution."""

import pytest

from invoice_matcher.schemas.entities import AliasMatchType, VendorAlias
from invoice_matcher.vendors import (
    AliasVendorResolver,
    find_matching_aliases,
    matches_alias_pattern,
    parse_merchant_name,
    tokenize,
)


class TestParseMerchantName:
    """Tests for the description parser fallback."""

    @pytest.mark.parametrize(
        "description,expected",
        [
            ("FACEBK *94ED4BD5F2", "Facebook"),
            ("AMZN Mktp DE", "Amazon"),
            ("Upwork -878873220REF", "Upwork"),
            ("העברה ל-חברת החשמל", "חברת החשמל"),
            ("Payment to Netflix.com", "Netflix.com"),
            ("SUPER PHARM  TLV 0423", "SUPER PHARM"),
            ("", ""),
        ],
    )
    def test_parse(self, description, expected):
        assert parse_merchant_name(description) == expected


class TestTokenize:
    """Tests for vendor tokenization."""

    def test_drops_short_and_noise_words(self):
        """Legal suffixes, short tokens and punctuation are removed."""
        assert tokenize("Acme Plumbing Ltd. & Co") == ["acme", "plumbing"]

    def test_empty(self):
        assert tokenize(None) == []
        assert tokenize("") == []


class TestAliasMatching:
    """Tests for alias pattern matching."""

    @pytest.mark.parametrize(
        "match_type,pattern,description,expected",
        [
            (AliasMatchType.CONTAINS, "aws", "AMZN AWS EMEA", True),
            (AliasMatchType.EXACT, "AMZN AWS", "amzn aws", True),
            (AliasMatchType.EXACT, "AMZN AWS", "AMZN AWS EMEA", False),
            (AliasMatchType.STARTS_WITH, "AMZN", "AMZN AWS", True),
            (AliasMatchType.STARTS_WITH, "AWS", "AMZN AWS", False),
            (AliasMatchType.ENDS_WITH, "EMEA", "AMZN AWS EMEA", True),
            (AliasMatchType.CONTAINS, "  ", "anything", False),
        ],
    )
    def test_match_types(self, match_type, pattern, description, expected):
        alias = VendorAlias(alias_pattern=pattern, canonical_name="X", match_type=match_type)
        assert matches_alias_pattern(description, alias) is expected

    def test_priority_order(self):
        """Higher priority aliases come first."""
        low = VendorAlias("AMZN", "Amazon", priority=1)
        high = VendorAlias("AMZN AWS", "Amazon Web Services", priority=10)

        matches = find_matching_aliases("AMZN AWS EMEA", [low, high])

        assert [a.canonical_name for a in matches] == ["Amazon Web Services", "Amazon"]


class TestAliasVendorResolver:
    """Tests for the alias-backed resolver."""

    def test_alias_wins_over_parser(self, aws_alias):
        resolver = AliasVendorResolver([aws_alias])

        resolution = resolver.describe("AMZN AWS *X12")

        assert resolution.is_resolved
        assert resolution.display_name == "Amazon Web Services"
        assert resolution.matched_alias is aws_alias

    def test_falls_back_to_parser(self, aws_alias):
        resolver = AliasVendorResolver([aws_alias])

        resolution = resolver.describe("FACEBK *94ED4BD5F2")

        assert not resolution.is_resolved
        assert resolution.display_name == "Facebook"
        assert resolver.resolve("FACEBK *94ED4BD5F2") == "Facebook"

    def test_custom_fallback(self):
        resolver = AliasVendorResolver(fallback_parser=str.upper)
        assert resolver.resolve("shop") == "SHOP"

    def test_empty_description(self):
        assert AliasVendorResolver().resolve("") == ""
