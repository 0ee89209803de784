"""
Unit tests for lenient numeric parsing and rounding.
"""

import pytest

from core.numbers import round_half_up, safe_ratio, to_bool, to_number, to_text


class TestToNumber:
    """Anything that is not a finite number parses to 0."""

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", "12abc", True, float("nan"), float("inf")])
    def test_unparseable_values_are_zero(self, value):
        assert to_number(value) == 0.0

    def test_numeric_text_is_parsed(self):
        assert to_number(" 12.5 ") == 12.5
        assert to_number("-3") == -3.0

    def test_numbers_pass_through(self):
        assert to_number(7) == 7.0
        assert to_number(2.25) == 2.25


class TestRoundHalfUp:

    def test_half_rounds_up(self):
        assert round_half_up(1.005, 2) == 1.01
        assert round_half_up(2.675, 2) == 2.68

    def test_negative_half_rounds_away_from_zero(self):
        assert round_half_up(-1.005, 2) == -1.01

    def test_four_places(self):
        assert round_half_up(33.33335, 4) == 33.3334

    def test_non_finite_is_zero(self):
        assert round_half_up(float("nan"), 2) == 0.0


def test_safe_ratio_guards_zero_denominator():
    assert safe_ratio(10, 0) == 0.0
    assert safe_ratio(10, 4) == 2.5


def test_to_bool_checkbox_values():
    assert to_bool("on") is True
    assert to_bool("TRUE") is True
    assert to_bool("0") is False
    assert to_bool(None) is False


def test_to_text_strips():
    assert to_text("  Jersey ") == "Jersey"
    assert to_text(None) == ""
