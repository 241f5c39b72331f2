"""Rounding helpers for hours and money.

Conventions:
- Hours are Decimal, rounded to 2 decimals at output boundaries
- Money is integer cents, rounded once per multiplication
- Both use ROUND_HALF_UP, which on Decimal rounds half away from zero
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

HOURS_PRECISION = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a boundary input to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_hours(hours: Decimal) -> Decimal:
    """Round an hour value to 2 decimal places."""
    return hours.quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


def round_cents(amount: Decimal) -> int:
    """Round a cent amount to a whole cent."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def minutes_to_hours(minutes: int) -> Decimal:
    """Convert whole minutes to hours rounded to 2 decimals."""
    return round_hours(Decimal(minutes) / Decimal(60))


def reconcile_to_total(exact: Sequence[Decimal], total_cents: int) -> list[int]:
    """Round exact shares half-up, then move single cents until they sum to the total.

    A shortfall is added one cent at a time in list order, a surplus taken one
    cent at a time in reverse order. Only entries with a positive exact share
    are adjusted, so zero-weight entries always stay at zero.
    """
    amounts = [round_cents(x) for x in exact]
    receivers = [i for i, x in enumerate(exact) if x > 0]
    diff = total_cents - sum(amounts)
    if diff and not receivers:
        raise ValueError("No entry can absorb the rounding remainder")

    step = 0
    while diff > 0:
        amounts[receivers[step % len(receivers)]] += 1
        diff -= 1
        step += 1
    step = 0
    while diff < 0:
        index = receivers[-1 - (step % len(receivers))]
        step += 1
        if amounts[index] == 0:
            continue
        amounts[index] -= 1
        diff += 1

    return amounts
