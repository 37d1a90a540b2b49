"""
Currency helpers; all order arithmetic happens in integer minor units (cents)
"""

import math
from decimal import Decimal
from typing import Union

Number = Union[int, float, str, Decimal, None]

CENT = Decimal("0.01")


def to_minor_amount(amount: Number) -> int:
    """
    4.99 -> 499; negative or unparseable amounts become 0

    Rounds the float product half up, so 1.005 -> 100 and 4.995 -> 499,
    the same cents the storefront shows for the cart.
    """
    if amount is None:
        return 0
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, math.floor(value * 100 + 0.5))


def to_major_amount(amount_minor: int) -> Decimal:
    """1497 -> Decimal('14.97')"""
    return (Decimal(max(0, int(amount_minor or 0))) / 100).quantize(CENT)
