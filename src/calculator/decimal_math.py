"""
Decimal Math Utilities for field calculations.

Provides precise decimal arithmetic to avoid floating point errors. Every
monetary value the engine writes to a field goes through ``money``.

Why Decimal?
- Float: 0.1 + 0.2 = 0.30000000000000004
- Decimal: 0.1 + 0.2 = 0.3

This matters for:
- Thresholds compared exactly ($200,000 vs $200,000.00001)
- Rounding to pennies (returns carry exact cent amounts)
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

# Type alias for values that can be converted to Decimal
Numeric = Union[int, float, str, Decimal]

MONEY_PLACES = Decimal("0.01")  # Round to pennies
ZERO = Decimal("0")


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a numeric value to Decimal.

    Args:
        value: Value to convert (int, float, str, or Decimal)

    Returns:
        Decimal representation

    Examples:
        >>> to_decimal(100)
        Decimal('100')
        >>> to_decimal(100.50)
        Decimal('100.5')
        >>> to_decimal("100.50")
        Decimal('100.50')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Convert float to string first to preserve representation
        return Decimal(str(value))
    return Decimal(value)


def money(value: Numeric) -> Decimal:
    """
    Convert value to money (rounded to pennies, half up).

    Examples:
        >>> money(100.999)
        Decimal('101.00')
        >>> money(1530)
        Decimal('1530.00')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def add(*values: Numeric) -> Decimal:
    """
    Add multiple values with Decimal precision.

    Examples:
        >>> add(100.10, 200.20, 300.30)
        Decimal('600.60')
    """
    result = ZERO
    for v in values:
        result += to_decimal(v)
    return result


def subtract(a: Numeric, b: Numeric) -> Decimal:
    return to_decimal(a) - to_decimal(b)


def multiply(a: Numeric, b: Numeric) -> Decimal:
    return to_decimal(a) * to_decimal(b)


def non_negative(value: Numeric) -> Decimal:
    """
    Floor a value at zero.

    Examples:
        >>> non_negative(-250)
        Decimal('0')
    """
    return max(ZERO, to_decimal(value))
