"""
Decimal Math Utilities for Inheritance Tax Calculations.

Provides precise decimal arithmetic to avoid floating point errors in
allowance, taper and projection maths. Intermediate values are kept at
full precision; rounding to pennies happens once, when results are
serialized.

Why Decimal?
- Float: 0.1 + 0.2 = 0.30000000000000004
- Decimal: 0.1 + 0.2 = 0.3

This matters for:
- Band thresholds where £325,000 must not become £324,999.99999
- Compound growth over decades where float drift accumulates
- Cached results that must be byte-identical for identical inputs
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union, Optional, Iterable
import logging

logger = logging.getLogger(__name__)

# Type alias for values that can be converted to Decimal
Numeric = Union[int, float, str, Decimal]

MONEY_PLACES = Decimal("0.01")  # Round to pennies
RATE_PLACES = Decimal("0.0001")  # 4 decimal places for rates
WHOLE = Decimal("1")

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
THOUSAND = Decimal("1000")


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a numeric value to Decimal.

    Examples:
        >>> to_decimal(100.50)
        Decimal('100.5')
        >>> to_decimal("325000")
        Decimal('325000')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Convert float to string first to preserve representation
        return Decimal(str(value))
    return Decimal(value)


def is_finite_number(value: Numeric) -> bool:
    """True when value converts to a finite Decimal."""
    try:
        return to_decimal(value).is_finite()
    except (InvalidOperation, TypeError, ValueError):
        return False


def money(value: Numeric) -> Decimal:
    """
    Convert value to money (rounded to pennies, half-up).

    Examples:
        >>> money(100.995)
        Decimal('101.00')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def rate(value: Numeric) -> Decimal:
    """
    Convert value to a rate (4 decimal places).

    Examples:
        >>> rate(0.4)
        Decimal('0.4000')
    """
    return to_decimal(value).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def round_half_up(value: Numeric) -> int:
    """
    Round to the nearest whole number, halves away from zero.

    Python's round() uses banker's rounding, which would send 12.5 years
    of life expectancy to 12.

    Examples:
        >>> round_half_up(12.5)
        13
    """
    return int(to_decimal(value).quantize(WHOLE, rounding=ROUND_HALF_UP))


def add(*values: Numeric) -> Decimal:
    """
    Add multiple values with Decimal precision.

    Examples:
        >>> add(100.10, 200.20, 300.30)
        Decimal('600.60')
    """
    result = Decimal("0")
    for v in values:
        result += to_decimal(v)
    return result


def total(values: Iterable[Numeric]) -> Decimal:
    """Sum an iterable of values at full precision."""
    return add(*values)


def multiply(a: Numeric, b: Numeric) -> Decimal:
    return to_decimal(a) * to_decimal(b)


def divide(a: Numeric, b: Numeric, default: Optional[Numeric] = None) -> Decimal:
    """
    Divide a by b with Decimal precision.

    Args:
        a: Dividend
        b: Divisor
        default: Value to return if division by zero (None raises error)

    Raises:
        InvalidOperation: If b is zero and no default provided
    """
    b_dec = to_decimal(b)
    if b_dec == 0:
        if default is not None:
            return to_decimal(default)
        raise InvalidOperation("Division by zero")
    return to_decimal(a) / b_dec


def percent_of(part: Numeric, whole: Numeric) -> Decimal:
    """
    Express part as a percentage (0-100) of whole; 0 when whole is 0.

    Examples:
        >>> percent_of(50, 200)
        Decimal('25.00')
    """
    return multiply(divide(part, whole, default=0), HUNDRED)


def min_decimal(*values: Numeric) -> Decimal:
    return min(to_decimal(v) for v in values)


def max_decimal(*values: Numeric) -> Decimal:
    return max(to_decimal(v) for v in values)


def clamp(value: Numeric, minimum: Numeric, maximum: Numeric) -> Decimal:
    """
    Clamp value between minimum and maximum.

    Examples:
        >>> clamp(-50, 0, 100)
        Decimal('0')
    """
    return max_decimal(minimum, min_decimal(value, maximum))


def non_negative(value: Numeric) -> Decimal:
    return max_decimal(value, ZERO)


def compound(principal: Numeric, annual_rate: Numeric, years: int) -> Decimal:
    """
    Future value of a lump sum with annual compounding.

    FV = PV x (1 + r)^n

    Examples:
        >>> compound(1000, "0.05", 2)
        Decimal('1102.5000')
    """
    if years <= 0:
        return to_decimal(principal)
    return to_decimal(principal) * (ONE + to_decimal(annual_rate)) ** years


def annuity_future_value(payment: Numeric, annual_rate: Numeric, years: int) -> Decimal:
    """
    Future value of a level annual payment invested at the end of each year.

    FV = PMT x [((1 + r)^n - 1) / r], or PMT x n when r is zero.
    """
    pmt = to_decimal(payment)
    r = to_decimal(annual_rate)
    if years <= 0:
        return ZERO
    if r == 0:
        return pmt * years
    return pmt * (((ONE + r) ** years - ONE) / r)


def linear_interpolate(
    x: Numeric,
    x0: Numeric,
    y0: Numeric,
    x1: Numeric,
    y1: Numeric,
) -> Decimal:
    """
    Interpolate y at x on the straight line through (x0, y0) and (x1, y1).

    Examples:
        >>> linear_interpolate(65, 60, 20, 70, 12)
        Decimal('16.0')
    """
    x_d, x0_d, x1_d = to_decimal(x), to_decimal(x0), to_decimal(x1)
    y0_d, y1_d = to_decimal(y0), to_decimal(y1)
    if x1_d == x0_d:
        return y0_d
    return y0_d + (y1_d - y0_d) * ((x_d - x0_d) / (x1_d - x0_d))


def to_float(value: Decimal) -> float:
    """
    Convert Decimal back to float for API responses.

    Use sparingly - prefer keeping as Decimal internally.
    """
    return float(value)


def format_money(value: Numeric) -> str:
    """
    Format value as a sterling string.

    Examples:
        >>> format_money(1234567.891)
        '£1,234,567.89'
    """
    m = money(value)
    return f"£{m:,.2f}"
