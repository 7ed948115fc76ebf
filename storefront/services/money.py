"""
Money Utilities - Decimal operations for prices and cart totals.

Prices arrive from Supabase as JSON numbers; everything is converted to
Decimal before any arithmetic so totals never pick up float drift.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

Number = Union[str, int, float, Decimal, None]

# Two decimal places for every amount shown to shoppers
MONEY_PRECISION = Decimal("0.01")

ZERO = Decimal("0")


def to_decimal(value: Number) -> Decimal:
    """
    Convert any value to Decimal safely.

    Args:
        value: Value to convert (str, int, float, Decimal, or None)

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return ZERO

    if isinstance(value, Decimal):
        return value

    try:
        if isinstance(value, float):
            # str() keeps 19.99 as 19.99 instead of its binary expansion
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return ZERO


def round_money(value: Number) -> Decimal:
    """Round a monetary value to cents."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def to_float(value: Number) -> float:
    """
    Convert to float for JSON payloads.

    Use only at serialization boundaries, not for internal calculations.
    """
    return float(to_decimal(value))


def add(a: Number, b: Number) -> Decimal:
    """Safe addition of monetary values."""
    return to_decimal(a) + to_decimal(b)


def multiply(value: Number, factor: Number) -> Decimal:
    """Safe multiplication of monetary value by a factor."""
    return to_decimal(value) * to_decimal(factor)


def percent(value: Number, percent_value: Number) -> Decimal:
    """Calculate percentage of a monetary value."""
    return multiply(value, to_decimal(percent_value) / Decimal("100"))
