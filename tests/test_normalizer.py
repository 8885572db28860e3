"""Tests for merchant name normalization."""

import pytest

from expense_categorizer.services.normalizer import (
    canonicalize_merchant_name,
    display_merchant_name,
    normalize,
)


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize("  STARBUCKS  Coffee #12! ") == "starbucks coffee 12"

    def test_underscore_is_punctuation(self):
        assert normalize("foo_bar") == "foobar"

    def test_collapses_whitespace(self):
        assert normalize("UBER\t\t*TRIP\n  HELP") == "uber trip help"

    def test_none_and_empty(self):
        assert normalize(None) is None
        assert normalize("") == ""
        assert normalize("***") == ""

    def test_keeps_non_ascii_letters(self):
        assert normalize("Café Müller") == "café müller"

    @pytest.mark.parametrize(
        "raw",
        ["STARBUCKS #1234", "McDonald's", "  sq *Blue   Bottle ", "AMZN Mktp US*2K4", "foo_bar-baz", "", "   "],
    )
    def test_idempotent(self, raw: str):
        once = normalize(raw)
        assert normalize(once) == once


class TestCanonicalize:
    def test_strips_processor_prefix(self):
        assert canonicalize_merchant_name("SQ *BLUE BOTTLE COFFEE") == "blue bottle coffee"
        assert canonicalize_merchant_name("PAYPAL *NETFLIX") == "netflix"
        assert canonicalize_merchant_name("TST* Shake Shack") == "shake shack"

    def test_strips_store_numbers_and_references(self):
        assert canonicalize_merchant_name("STARBUCKS #1234") == "starbucks"
        assert canonicalize_merchant_name("UBER TRIP 84721") == "uber trip"
        assert canonicalize_merchant_name("WALMART STORE #512") == "walmart"

    def test_strips_corporate_suffix(self):
        assert canonicalize_merchant_name("Acme Widgets Inc.") == "acme widgets"
        assert canonicalize_merchant_name("Blue Apron LLC") == "blue apron"

    def test_blank(self):
        assert canonicalize_merchant_name(None) == ""
        assert canonicalize_merchant_name("   ") == ""


def test_display_name_uses_known_spellings():
    assert display_merchant_name("mcdonalds") == "McDonald's"
    assert display_merchant_name("blue bottle coffee") == "Blue Bottle Coffee"
    assert display_merchant_name("") == ""
