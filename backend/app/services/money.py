"""
Money utilities.

WHAT: Decimal helpers shared by the pricing, invoicing and finder-fee code.

WHY: Monetary values must never pass through binary floats. Every amount in
the billing engine is a ``Decimal`` and is rounded to cents with
ROUND_HALF_UP only where a value is stored or displayed.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a value to Decimal.

    None and empty strings become 0. Floats go through ``str`` so that
    ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.

    Raises:
        ValueError: If the value is not numeric
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc


def round_money(value: Any) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(base: Any, percent: Any) -> Decimal:
    """``base × percent / 100``, unrounded."""
    return to_decimal(base) * to_decimal(percent) / HUNDRED


def sum_money(values: Iterable[Optional[Any]]) -> Decimal:
    """Sum amounts, treating None as 0."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def non_negative(value: Any) -> Decimal:
    return max(ZERO, to_decimal(value))
