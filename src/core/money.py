"""Monetary amount helpers.

Amounts are handled as ``Decimal`` inside the services and stored as JSON
numbers, which PostgREST hands back as floats or ints.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")


def to_amount(value: Any) -> Decimal:
    """Convert a stored or submitted value into a two-place Decimal.

    Args:
        value: int, float, str or Decimal amount. None is treated as zero.

    Returns:
        Decimal: Amount rounded half-up to cents.
    """
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        # str() first so floats like 0.1 do not carry binary noise
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def amount_to_json(value: Decimal) -> float:
    """Serialize an amount for a JSON column."""
    return float(to_amount(value))


def to_minor_units(value: Any) -> int:
    """Convert an amount to the gateway's minor unit (x100), rounded to an integer."""
    minor = Decimal(str(value)) * 100
    return int(minor.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
