"""Decimal money helpers.

All amounts are single-currency values with two decimal places. Rounding is
ROUND_HALF_UP everywhere: 1.005 becomes 1.01, 1.004 becomes 1.00.
Storage keeps integer cents; interest rates are stored as basis points
(hundredths of a percent), which use the same conversion.
"""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to 2 decimal places, rounding half up"""
    if isinstance(value, float):
        # str() avoids binary float artefacts like 0.1 + 0.2
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int(to_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)
