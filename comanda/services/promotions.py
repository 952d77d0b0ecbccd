# comanda/services/promotions.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..errors import (
    BelowMinimum,
    ChannelNotAllowed,
    Expired,
    Inactive,
    InvalidPromotion,
    NoEligibleItems,
    NotStarted,
    PromotionNotFound,
    ZeroDiscount,
)
from ..schemas.orders import OrderLine
from ..schemas.promotions import Promotion, normalize_code
from ..store import DocumentStore
from .catalog import CatalogLookup
from .normalize import normalize_order_type
from .pricing import price_line

COLLECTION = "promotions"


@dataclass(frozen=True)
class LineEligibility:
    line_id: str
    eligible: bool
    subtotal: int
    matched_by: Optional[str] = None    # global | menu_item | subcategory | category


@dataclass(frozen=True)
class EvalResult:
    promotion_id: str
    code: str
    discount_total: int
    target_subtotal: int
    lines: Tuple[LineEligibility, ...]

    @property
    def weights(self) -> List[int]:
        return [ln.subtotal if ln.eligible else 0 for ln in self.lines]


# --- lookups ------------------------------------------------------------------

def parse_promotion(data: Dict[str, Any], promotion_id: Optional[str] = None) -> Promotion:
    """Validate a stored promotion document; a malformed one is an InvalidPromotion."""
    doc = dict(data)
    if promotion_id is not None:
        doc["id"] = promotion_id
    try:
        return Promotion.model_validate(doc)
    except ValidationError as exc:
        problems = [f"{'.'.join(str(p) for p in err['loc']) or 'document'}: {err['msg']}" for err in exc.errors()]
        raise InvalidPromotion(doc.get("id"), problems) from exc


def percent_of(target: int, percent: Decimal) -> int:
    """``floor(target * percent / 100)`` without going through float."""
    return int((Decimal(target) * percent / 100).to_integral_value(rounding=ROUND_FLOOR))


def load_promotion(store: DocumentStore, promotion_id: str) -> Promotion:
    data = store.get(f"{COLLECTION}/{promotion_id}")
    if data is None:
        raise PromotionNotFound(promotion_id=promotion_id)
    return parse_promotion(data, promotion_id)


def find_by_code(store: DocumentStore, code: str) -> Promotion:
    wanted = normalize_code(code)
    if not wanted:
        raise PromotionNotFound(code=code)
    rows = store.where(COLLECTION, [("code", "==", wanted)], limit=1)
    if not rows:
        raise PromotionNotFound(code=wanted)
    return parse_promotion(rows[0])


# --- validation ---------------------------------------------------------------

def check_window(promotion: Promotion, now: datetime) -> None:
    c = promotion.constraints
    if c.start_at is not None and now < c.start_at:
        raise NotStarted(promotion.id, c.start_at)
    if c.end_at is not None and now > c.end_at:
        raise Expired(promotion.id, c.end_at)


def check_channel(promotion: Promotion, channel: Optional[str]) -> None:
    allowed = promotion.constraints.allowed_order_types
    if not allowed:
        return
    wanted = normalize_order_type(channel)
    if wanted is None or wanted not in {normalize_order_type(t) for t in allowed}:
        raise ChannelNotAllowed(promotion.id, channel, list(allowed))


def _match(promotion: Promotion, line: OrderLine, catalog: Optional[CatalogLookup]) -> Optional[str]:
    scope = promotion.scope
    if scope.is_global:
        return "global"
    if line.menu_item_id in scope.menu_items:
        return "menu_item"

    category_id, subcategory_id = line.category_id, line.subcategory_id
    wants_taxonomy = bool(scope.subcategories or scope.categories)
    if wants_taxonomy and catalog is not None and not (category_id and subcategory_id):
        entry = catalog.resolve(line.menu_item_id)
        if entry is not None:
            category_id = category_id or entry.category_id
            subcategory_id = subcategory_id or entry.subcategory_id

    if subcategory_id and subcategory_id in scope.subcategories:
        return "subcategory"
    if category_id and category_id in scope.categories:
        return "category"
    return None


def evaluate(
    promotion: Promotion,
    lines: Sequence[OrderLine],
    channel: Optional[str],
    now: datetime,
    catalog: Optional[CatalogLookup] = None,
) -> EvalResult:
    """
    Decide which lines a promotion covers and how much it takes off in total.

    Fails fast, in order: inactive, outside the validity window, channel not
    allowed, nothing eligible, eligible subtotal below the minimum, zero
    discount.
    """
    if not promotion.active:
        raise Inactive(promotion.id)
    check_window(promotion, now)
    check_channel(promotion, channel)

    results: List[LineEligibility] = []
    target = 0
    for line in lines:
        subtotal = price_line(line)
        matched_by = _match(promotion, line, catalog)
        results.append(LineEligibility(
            line_id=line.line_id,
            eligible=matched_by is not None,
            subtotal=subtotal,
            matched_by=matched_by,
        ))
        if matched_by is not None:
            target += subtotal

    if target <= 0:
        raise NoEligibleItems(promotion.id)

    minimum = promotion.constraints.min_target_subtotal
    if minimum and target < minimum:
        raise BelowMinimum(promotion.id, target, minimum)

    if promotion.type == "percent":
        discount = percent_of(target, promotion.value)
    else:
        discount = min(int(promotion.value), target)
    if discount <= 0:
        raise ZeroDiscount(promotion.id, target)

    return EvalResult(
        promotion_id=promotion.id,
        code=promotion.code,
        discount_total=discount,
        target_subtotal=target,
        lines=tuple(results),
    )
