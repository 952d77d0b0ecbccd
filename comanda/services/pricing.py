# comanda/services/pricing.py
from __future__ import annotations

from ..money import apply_bps
from ..schemas.orders import Amounts, OrderLine


def unit_price(line: OrderLine) -> int:
    return (
        line.base_price
        + sum(o.delta for o in line.options)
        + sum(a.amount for a in line.addons)
    )


def price_line(line: OrderLine) -> int:
    """Pre-discount line subtotal in minor units. An explicit override is returned untouched."""
    if line.total_override is not None:
        return line.total_override
    return unit_price(line) * line.quantity


def compute_amounts(subtotal: int, discount: int = 0, tip: int = 0,
                    tax_rate_bps: int = 0, service_fee_bps: int = 0) -> Amounts:
    """Tax and service fee are charged on the discounted subtotal."""
    if discount > subtotal:
        raise ValueError(f"discount {discount} exceeds subtotal {subtotal}")
    taxable = subtotal - discount
    return Amounts.build(
        subtotal=subtotal,
        discount=discount,
        tax=apply_bps(taxable, tax_rate_bps),
        service_fee=apply_bps(taxable, service_fee_bps),
        tip=tip,
    )
