# comanda/money.py
"""
Money lives in integer minor units (cents) everywhere inside the engine.

Major-unit amounts only show up at the payload boundary (legacy clients send
``12.50``) and are converted here, through ``Decimal``, never through float
arithmetic.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

MINOR_PER_MAJOR = 100
BPS_DENOMINATOR = 10_000


def to_minor(value: Any) -> Optional[int]:
    """Major units (``"12.5"``, ``12.5``, ``Decimal``) -> minor units, half-up. ``None`` if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return int((amount * MINOR_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def as_minor(value: Any) -> Optional[int]:
    """Value already expressed in minor units; tolerates ``"150"`` and ``150.0``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_bps(amount: int, bps: int) -> int:
    """``amount * bps / 10000`` rounded half-up, for non-negative integers."""
    if amount < 0 or bps < 0:
        raise ValueError("apply_bps expects non-negative amount and rate")
    return (amount * bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR
