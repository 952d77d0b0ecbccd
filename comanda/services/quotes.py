# comanda/services/quotes.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from ..schemas.orders import Amounts, OrderLine
from ..schemas.promotions import Promotion
from .allocation import allocate
from .catalog import CatalogLookup
from .pricing import compute_amounts, price_line
from .promotions import EvalResult, evaluate


@dataclass
class Quote:
    lines: List[OrderLine]
    amounts: Amounts
    evaluation: Optional[EvalResult] = None


def build_quote(
    lines: Sequence[OrderLine],
    order_type: Optional[str],
    now: datetime,
    promotion: Optional[Promotion] = None,
    catalog: Optional[CatalogLookup] = None,
    tip: int = 0,
    tax_rate_bps: int = 0,
    service_fee_bps: int = 0,
) -> Quote:
    """
    Price ``lines`` and, when a promotion is given, spread its discount over
    the eligible lines. Returns copies; the input lines are not touched.

    Promotion failures propagate as their typed error.
    """
    priced = [ln.model_copy(update={"subtotal": price_line(ln), "discount": 0}) for ln in lines]
    subtotal = sum(ln.subtotal for ln in priced)

    evaluation: Optional[EvalResult] = None
    if promotion is not None:
        evaluation = evaluate(promotion, priced, order_type, now, catalog=catalog)
        for ln, share in zip(priced, allocate(evaluation.discount_total, evaluation.weights)):
            ln.discount = share

    discount = evaluation.discount_total if evaluation else 0
    amounts = compute_amounts(
        subtotal, discount=discount, tip=tip,
        tax_rate_bps=tax_rate_bps, service_fee_bps=service_fee_bps,
    )
    return Quote(lines=priced, amounts=amounts, evaluation=evaluation)
