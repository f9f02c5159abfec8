import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

_TWO_PLACES = Decimal("0.01")


def round2(value: float) -> float:
    """Round to 2 decimals, ties away from zero (123.455 -> 123.46)"""
    # repr() gives the shortest string that round-trips, so 1.005 stays 1.005
    return float(Decimal(repr(float(value))).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def nearest_rank(sorted_values: Sequence[float], q: float) -> float:
    """Nearest-rank percentile: the element at ceil(n*q)-1 of an ascending sequence"""
    if not sorted_values:
        raise ValueError("nearest_rank requires at least one value")
    if not 0 < q <= 1:
        raise ValueError(f"percentile fraction must be in (0, 1], got {q}")
    index = max(math.ceil(len(sorted_values) * q) - 1, 0)
    return sorted_values[index]
