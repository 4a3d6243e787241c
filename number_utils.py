"""
Rounding helpers. Prices and percents are rounded HALF_UP (not banker's rounding
as done by the builtin round()).
"""
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]


def round_half_up(value: Number, decimals: int = 2) -> float:
    """Round value HALF_UP to the given number of decimals and return a float."""
    if isinstance(value, float) and not math.isfinite(value):
        return 0.0
    exponent = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def round_half_up_int(value: Number) -> int:
    """Round value HALF_UP to an integer."""
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
