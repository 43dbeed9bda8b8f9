"""Tests for input validators."""

from decimal import Decimal

import pytest

from batchflow.utils.validators import (
    decimal_places,
    parse_decimal,
    sanitize_string,
    validate_choice,
    validate_non_negative_number,
    validate_positive_number,
    validate_required_string,
)


class TestParseDecimal:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0.1, Decimal("0.1")),
            ("12.50", Decimal("12.50")),
            (" 3 ", Decimal("3")),
            (7, Decimal("7")),
            (Decimal("1.5"), Decimal("1.5")),
        ],
    )
    def test_parses(self, value, expected):
        assert parse_decimal(value) == expected

    @pytest.mark.parametrize("value", [None, "", True, "abc", "nan", "inf"])
    def test_rejects(self, value):
        assert parse_decimal(value) is None


class TestValidators:
    def test_required_string(self):
        assert validate_required_string("kg", "unit") == (True, "")
        assert validate_required_string("  ", "unit") == (False, "unit: This field is required")
        assert validate_required_string(None, "unit")[0] is False

    def test_positive_number(self):
        assert validate_positive_number("0.5", "quantity")[0]
        assert validate_positive_number(0, "quantity") == (
            False,
            "quantity: Must be greater than zero",
        )
        assert validate_positive_number("x", "quantity") == (
            False,
            "quantity: Must be a valid number",
        )

    def test_non_negative_number(self):
        assert validate_non_negative_number(0, "capacity")[0]
        assert validate_non_negative_number(-1, "capacity") == (
            False,
            "capacity: Cannot be negative",
        )

    def test_decimal_places_limit(self):
        assert validate_positive_number("0.001", "quantity", 3) == (True, "")
        assert validate_positive_number("2.5000", "quantity", 3) == (True, "")
        assert validate_positive_number("0.0004", "quantity", 3) == (
            False,
            "quantity: Must have at most 3 decimal places",
        )
        assert validate_non_negative_number(1e-05, "capacity", 3)[0] is False
        assert validate_positive_number("0.0004", "quantity")[0]

    def test_choice(self):
        assert validate_choice("A", ["A", "B"], "grade")[0]
        assert validate_choice("E", ["A", "B"], "grade") == (False, "grade: Must be one of A, B")

    def test_sanitize_string(self):
        assert sanitize_string("  note ") == "note"
        assert sanitize_string("   ") is None
        assert sanitize_string(None) is None


class TestDecimalPlaces:
    @pytest.mark.parametrize(
        "value, places",
        [
            (Decimal("80"), 0),
            (Decimal("80.000"), 0),
            (Decimal("1.250"), 2),
            (Decimal("0.0004"), 4),
            (Decimal("1E+2"), 0),
        ],
    )
    def test_ignores_trailing_zeros(self, value, places):
        assert decimal_places(value) == places
