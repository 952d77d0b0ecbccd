# comanda/services/allocation.py
"""
Largest-remainder (Hamilton) apportionment of a discount across order lines.

The shares are computed with integer ``divmod`` so the fractional parts are
compared exactly; the result always sums to the requested total.
"""
from __future__ import annotations

from typing import List, Sequence


def allocate(total: int, weights: Sequence[int]) -> List[int]:
    """
    Split ``total`` minor units proportionally to ``weights``.

    >>> allocate(133, [1000, 333])
    [100, 33]
    """
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")
    if any(w < 0 for w in weights):
        raise ValueError("weights must be >= 0")

    weight_sum = sum(weights)
    if weight_sum == 0:
        return [0] * len(weights)

    floors: List[int] = []
    remainders: List[int] = []
    for w in weights:
        q, r = divmod(total * w, weight_sum)
        floors.append(q)
        remainders.append(r)

    leftover = total - sum(floors)
    # biggest fractional part first, ties by position
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        floors[i] += 1
    return floors
