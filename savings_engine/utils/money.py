"""Decimal helpers for naira amounts"""

from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to a two-place Decimal (None -> 0.00)"""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percentage_of(amount, rate) -> Decimal:
    """
    Rate is a fraction, not a percent.

    Example:
        percentage_of(10000, "0.05") -> Decimal("500.00")
    """
    if not amount or not rate:
        return ZERO
    return to_money(Decimal(str(amount)) * Decimal(str(rate)))


def whole_periods(amount, period_amount) -> int:
    """How many full periods `amount` pays for (floor, never negative)"""
    amount = to_money(amount)
    period_amount = to_money(period_amount)
    if period_amount <= 0 or amount <= 0:
        return 0
    return int(amount // period_amount)
