# comanda/routes/cart.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, Field

from ..clock import Clock
from ..errors import InvalidPayload
from ..schemas.base import CamelModel
from ..services.catalog import StoreCatalog
from ..services.normalize import normalize_lines, normalize_order_type
from ..services.promotions import find_by_code
from ..services.quotes import build_quote
from ..settings import settings
from ..store import DocumentStore
from .deps import get_catalog, get_clock, get_store

router = APIRouter(prefix="/cart", tags=["cart"])


# ---- Pydantic models ---------------------------------------------------------
class QuoteBody(CamelModel):
    type: str = Field(default="dine_in", validation_alias=AliasChoices("type", "orderType"))
    items: List[Dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "lines", "orderLines", "cart"),
    )
    tip: int = Field(default=0, ge=0, validation_alias=AliasChoices("tip", "tipCents"))
    promotion_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("promotionCode", "couponCode", "code"),
    )


class ApplyPromoBody(CamelModel):
    code: str = ""
    order_type: str = Field(default="", validation_alias=AliasChoices("orderType", "type"))
    lines: List[Dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("lines", "items"),
    )


def _order_type(raw: str) -> str:
    order_type = normalize_order_type(raw)
    if order_type is None:
        raise InvalidPayload(f"unknown order type {raw!r}", type=raw)
    return order_type


# ---- Routes ------------------------------------------------------------------
@router.post("/quote")
def quote_cart(
    body: QuoteBody,
    store: DocumentStore = Depends(get_store),
    catalog: StoreCatalog = Depends(get_catalog),
    clock: Clock = Depends(get_clock),
):
    """Price a cart without persisting anything."""
    order_type = _order_type(body.type)
    lines = normalize_lines(body.items)
    promotion = find_by_code(store, body.promotion_code) if body.promotion_code else None
    quote = build_quote(
        lines, order_type, clock(),
        promotion=promotion, catalog=catalog, tip=body.tip,
        tax_rate_bps=settings.tax_rate_bps, service_fee_bps=settings.service_fee_bps,
    )
    return {
        "orderType": order_type,
        "currency": settings.currency,
        "lines": [ln.to_doc() for ln in quote.lines],
        "amounts": quote.amounts.to_doc(),
        "promotion": None if quote.evaluation is None else {
            "promotionId": quote.evaluation.promotion_id,
            "code": quote.evaluation.code,
            "discountTotal": quote.evaluation.discount_total,
        },
    }


@router.post("/apply-promo")
def apply_promo(
    body: ApplyPromoBody,
    store: DocumentStore = Depends(get_store),
    catalog: StoreCatalog = Depends(get_catalog),
    clock: Clock = Depends(get_clock),
):
    """
    Check a code against a cart and show how its discount would be split.
    Usage limits are only reported here; they are enforced on consume.
    """
    if not body.code.strip():
        raise InvalidPayload("promotion code required")
    order_type = _order_type(body.order_type)
    lines = normalize_lines(body.lines)
    promotion = find_by_code(store, body.code)
    quote = build_quote(lines, order_type, clock(), promotion=promotion, catalog=catalog)
    evaluation = quote.evaluation

    return {
        "promotionId": promotion.id,
        "code": promotion.code,
        "type": promotion.type,
        "value": promotion.value,
        "discountTotal": evaluation.discount_total,
        "targetSubtotal": evaluation.target_subtotal,
        "discountByLine": [
            {
                "lineId": line.line_id,
                "menuItemId": line.menu_item_id,
                "discount": line.discount,
                "eligible": elig.eligible,
                "matchedBy": elig.matched_by,
                "lineSubtotal": elig.subtotal,
            }
            for line, elig in zip(quote.lines, evaluation.lines)
        ],
        "appliedScope": promotion.scope.to_doc(),
        "limits": {
            "globalLimit": promotion.constraints.global_limit,
            "perUserLimit": promotion.constraints.per_caller_limit,
        },
    }
