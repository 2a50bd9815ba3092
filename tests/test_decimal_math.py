"""
Tests for Decimal Math Utilities.

Tests verify:
1. Decimal precision eliminates floating point errors
2. Money and rate rounding is half-up
3. Compound growth and annuity maths are exact
4. Interpolation between table rows
"""

import pytest
from decimal import Decimal, InvalidOperation
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


class TestDecimalConversion:
    """Tests for value conversion to Decimal."""

    def test_to_decimal_from_float(self):
        """Test converting float to Decimal preserves representation."""
        from calculator.decimal_math import to_decimal
        assert to_decimal(100.50) == Decimal("100.5")

    def test_to_decimal_from_decimal(self):
        """Test Decimal passes through unchanged."""
        from calculator.decimal_math import to_decimal
        original = Decimal("325000")
        assert to_decimal(original) is original

    def test_is_finite_number(self):
        """Non-finite and non-numeric values are rejected."""
        from calculator.decimal_math import is_finite_number
        assert is_finite_number("325000")
        assert not is_finite_number(float("inf"))
        assert not is_finite_number("NaN")
        assert not is_finite_number("abc")


class TestRounding:
    """Tests for half-up rounding."""

    def test_money_rounds_half_up(self):
        """Test pennies round half-up, not banker's rounding."""
        from calculator.decimal_math import money
        assert money("100.995") == Decimal("101.00")
        assert money("100.125") == Decimal("100.13")

    def test_rate_four_places(self):
        """Test rates keep four decimal places."""
        from calculator.decimal_math import rate
        assert rate(0.4) == Decimal("0.4000")
        assert rate("0.123456") == Decimal("0.1235")

    def test_round_half_up_years(self):
        """Test 12.5 years rounds to 13 rather than 12."""
        from calculator.decimal_math import round_half_up
        assert round_half_up("12.5") == 13
        assert round_half_up("12.4") == 12
        assert round_half_up("0.4") == 0

    def test_no_float_drift(self):
        """Test 0.1 + 0.2 is exactly 0.3."""
        from calculator.decimal_math import add
        assert add(0.1, 0.2) == Decimal("0.3")


class TestArithmetic:
    """Tests for arithmetic helpers."""

    def test_divide_by_zero_with_default(self):
        """Test division by zero returns the default when given."""
        from calculator.decimal_math import divide
        assert divide(100, 0, default=0) == Decimal("0")

    def test_divide_by_zero_raises(self):
        """Test division by zero raises without a default."""
        from calculator.decimal_math import divide
        with pytest.raises(InvalidOperation):
            divide(100, 0)

    def test_percent_of(self):
        """Test part as a percentage of whole."""
        from calculator.decimal_math import percent_of
        assert percent_of(50, 200) == Decimal("25")
        assert percent_of(50, 0) == Decimal("0")

    def test_clamp_and_non_negative(self):
        """Test clamping helpers."""
        from calculator.decimal_math import clamp, non_negative
        assert clamp(-50, 0, 100) == Decimal("0")
        assert clamp(150, 0, 100) == Decimal("100")
        assert non_negative(Decimal("-1")) == Decimal("0")


class TestGrowth:
    """Tests for compound growth and annuities."""

    def test_compound_two_years(self):
        """Test 1000 at 5% for two years is 1102.50."""
        from calculator.decimal_math import compound
        assert compound(1000, "0.05", 2) == Decimal("1102.5")

    def test_compound_zero_years_unchanged(self):
        """Test zero years leaves the principal as is."""
        from calculator.decimal_math import compound
        assert compound(1000, "0.05", 0) == Decimal("1000")

    def test_annuity_zero_rate(self):
        """Test a zero return is payment times years."""
        from calculator.decimal_math import annuity_future_value
        assert annuity_future_value(1000, 0, 10) == Decimal("10000")

    def test_annuity_with_rate(self):
        """Test FV of 1000 a year at 10% for 2 years is 2100."""
        from calculator.decimal_math import annuity_future_value
        assert annuity_future_value(1000, "0.10", 2) == Decimal("2100")

    def test_linear_interpolate_midpoint(self):
        """Test interpolation between (60, 20) and (70, 12) at 65."""
        from calculator.decimal_math import linear_interpolate
        assert linear_interpolate(65, 60, 20, 70, 12) == Decimal("16")


class TestFormatting:
    """Tests for display formatting."""

    def test_format_money(self):
        """Test sterling formatting with thousands separators."""
        from calculator.decimal_math import format_money
        assert format_money(1234567.891) == "£1,234,567.89"
