"""
Unit tests for money helpers.
"""

from decimal import Decimal

import pytest

from app.services.money import non_negative, percent_of, round_money, sum_money, to_decimal


class TestToDecimal:
    def test_none_and_empty_are_zero(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal("") == Decimal("0")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int_and_str(self):
        assert to_decimal(5) == Decimal("5")
        assert to_decimal("12.50") == Decimal("12.50")

    def test_not_numeric(self):
        with pytest.raises(ValueError):
            to_decimal("abc")


class TestRounding:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0.005", "0.01"),
            ("0.004", "0.00"),
            ("151.4634", "151.46"),
            ("186.3", "186.30"),
        ],
    )
    def test_round_half_up(self, value, expected):
        assert round_money(Decimal(value)) == Decimal(expected)

    def test_percent_of_is_unrounded(self):
        assert percent_of(Decimal("10.01"), Decimal("10")) == Decimal("1.001")

    def test_sum_skips_none(self):
        assert sum_money([Decimal("1"), None, Decimal("2.5")]) == Decimal("3.5")

    def test_non_negative(self):
        assert non_negative(Decimal("-3")) == Decimal("0")
        assert non_negative(Decimal("3")) == Decimal("3")
