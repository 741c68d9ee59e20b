"""
Money arithmetic.

Amounts are stored as floats (USDT and VES) but every computation goes
through Decimal and is rounded half-up to cents before it is persisted.
"""
from decimal import Decimal, ROUND_HALF_UP

_CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    return Decimal(str(value))


def round_cents(value) -> float:
    """
    >>> round_cents(10.005)
    10.01
    >>> round_cents(Decimal("3.333"))
    3.33
    """
    return float(to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def line_total(unit_price, quantity: int) -> Decimal:
    return to_decimal(unit_price) * quantity


def convert(amount, rate) -> float:
    """Convert an amount with an exchange rate, rounded to cents."""
    return round_cents(to_decimal(amount) * to_decimal(rate))
