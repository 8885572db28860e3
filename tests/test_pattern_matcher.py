"""Tests for pattern matching against the supported candidate shapes."""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from expense_categorizer.services.pattern_matcher import (
    PatternRule,
    PatternType,
    TransactionView,
    as_transaction,
    matches,
    parse_amount_range,
    parse_time_range,
)


def rule(pattern_type: str, value: str, active: bool = True) -> PatternRule:
    return PatternRule(pattern_type=PatternType(pattern_type), pattern_value=value, active=active)


class TestTextPatterns:
    def test_merchant_substring_case_insensitive(self):
        p = rule("merchant", "starbucks")
        assert matches(p, "STARBUCKS")
        assert matches(p, "Starbucks Coffee")
        assert not matches(p, "McDonald's")

    def test_blank_candidates_never_match(self):
        p = rule("merchant", "starbucks")
        assert not matches(p, "")
        assert not matches(p, "   ")
        assert not matches(p, None)
        assert not matches(p, {"merchant_name": None})

    def test_keyword_checks_merchant_field(self):
        p = rule("keyword", "coffee")
        assert matches(p, {"merchant_name": "Blue Bottle Coffee"})
        assert not matches(p, {"merchant_name": "Blue Bottle", "description": "coffee beans"})

    def test_description_checks_description_field(self):
        p = rule("description", "lunch")
        assert matches(p, {"merchant_name": "Chipotle", "description": "Team LUNCH"})
        assert not matches(p, {"merchant_name": "Lunch Box"})

    def test_attribute_objects(self):
        expense = SimpleNamespace(merchant_name="UBER *TRIP", description=None, amount=None, transaction_date=None)
        assert matches(rule("merchant", "uber"), expense)

    def test_inactive_pattern_never_matches(self):
        assert not matches(rule("merchant", "starbucks", active=False), "STARBUCKS")


class TestRegexPatterns:
    def test_case_insensitive_search(self):
        p = rule("regex", r"^uber\b")
        assert matches(p, "UBER *TRIP")
        assert not matches(p, "SUPER UBER")

    def test_structured_candidate_checks_merchant_and_description(self):
        p = rule("regex", r"\bgas\b")
        assert matches(p, {"merchant_name": "Shell", "description": "GAS station"})
        assert matches(p, {"merchant_name": "GAS n GO"})
        assert not matches(p, {"amount": 10})

    def test_uncompilable_stored_regex_does_not_match(self):
        assert not matches(rule("regex", "[unclosed"), "anything")


class TestAmountRange:
    @pytest.mark.parametrize("amount", [Decimal("10.00"), 25, 50.0, "50.00"])
    def test_inclusive_bounds(self, amount):
        assert matches(rule("amount_range", "10.00-50.00"), amount)

    @pytest.mark.parametrize("amount", [Decimal("9.99"), 50.01, "50.01"])
    def test_outside_bounds(self, amount):
        assert not matches(rule("amount_range", "10.00-50.00"), amount)

    def test_structured_candidate(self):
        assert matches(rule("amount_range", "10.00-50.00"), {"amount": "25.00"})
        assert not matches(rule("amount_range", "10.00-50.00"), {"merchant_name": "Starbucks"})

    def test_negative_bounds(self):
        p = rule("amount_range", "-100--50")
        assert matches(p, -75)
        assert matches(p, -100)
        assert not matches(p, -49.99)

    def test_bool_is_not_an_amount(self):
        assert not matches(rule("amount_range", "0-5"), True)

    def test_malformed_stored_range_does_not_match(self):
        assert not matches(rule("amount_range", "abc"), 10)


class TestTimePatterns:
    @pytest.mark.parametrize(
        "window,hour,expected",
        [
            ("morning", 6, True),
            ("morning", 11, True),
            ("morning", 12, False),
            ("afternoon", 12, True),
            ("afternoon", 16, True),
            ("afternoon", 17, False),
            ("evening", 17, True),
            ("evening", 20, True),
            ("evening", 21, False),
            ("night", 21, True),
            ("night", 0, True),
            ("night", 5, True),
            ("night", 6, False),
        ],
    )
    def test_named_windows(self, window: str, hour: int, expected: bool):
        ts = datetime(2024, 3, 13, hour, 30)  # Wednesday
        assert matches(rule("time", window), {"transaction_date": ts}) is expected

    def test_weekend_and_weekday(self):
        saturday = datetime(2024, 3, 16, 10, 0)
        monday = datetime(2024, 3, 18, 10, 0)
        assert matches(rule("time", "weekend"), saturday)
        assert not matches(rule("time", "weekend"), monday)
        assert matches(rule("time", "weekday"), monday)
        assert not matches(rule("time", "weekday"), saturday)

    def test_explicit_range_inclusive(self):
        p = rule("time", "12:00-14:00")
        assert matches(p, datetime(2024, 3, 13, 12, 0))
        assert matches(p, datetime(2024, 3, 13, 14, 0))
        assert not matches(p, datetime(2024, 3, 13, 14, 1))
        assert not matches(p, datetime(2024, 3, 13, 11, 59))

    def test_explicit_range_wraps_midnight(self):
        p = rule("time", "22:00-02:00")
        assert matches(p, datetime(2024, 3, 13, 23, 15))
        assert matches(p, datetime(2024, 3, 13, 1, 59))
        assert not matches(p, datetime(2024, 3, 13, 12, 0))

    def test_iso_strings_and_dates(self):
        assert matches(rule("time", "morning"), {"transaction_date": "2024-03-13T08:15:00"})
        assert matches(rule("time", "night"), date(2024, 3, 13))  # midnight
        assert not matches(rule("time", "morning"), {"transaction_date": "not a date"})

    def test_missing_timestamp(self):
        assert not matches(rule("time", "morning"), {"merchant_name": "Starbucks"})
        assert not matches(rule("time", "morning"), "Starbucks")


def test_as_transaction_shapes():
    assert as_transaction("STARBUCKS") == TransactionView(merchant_name="STARBUCKS", description="STARBUCKS")
    assert as_transaction(12.5).amount == Decimal("12.5")
    assert as_transaction(None) == TransactionView()
    view = as_transaction({"merchant_name": "Uber", "amount": 10, "transaction_date": "2024-01-01"})
    assert view.merchant_name == "Uber"
    assert view.amount == Decimal(10)
    assert view.transaction_date == datetime(2024, 1, 1)


def test_unknown_pattern_type_does_not_match():
    assert not matches(SimpleNamespace(pattern_type="vibes", pattern_value="good"), "anything")


def test_parsers():
    assert parse_amount_range("-100--50") == (Decimal("-100"), Decimal("-50"))
    assert parse_amount_range("10-50") == (Decimal("10"), Decimal("50"))
    assert parse_amount_range("ten-fifty") is None
    assert parse_time_range("09:30-17:00") == (570, 1020)
    assert parse_time_range("25:00-26:00") is None
