# comanda/services/ledger.py
"""
Promotion redemption ledger.

A redemption is recorded once per (promotion, order) at
``promotions/{id}/redemptions/{orderId}``; the existence of that document is
what makes ``consume`` safe to call twice. Per-caller usage is counted at
``promotions/{id}/usages/{callerId}``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..clock import Clock, utcnow
from ..errors import (
    CodeMismatch,
    GlobalLimitExceeded,
    Inactive,
    InvalidPayload,
    OrderNotFound,
    PerCallerLimitExceeded,
    PromotionNotApplied,
    PromotionNotFound,
)
from ..schemas.promotions import normalize_code
from ..store import DocumentStore, StoreTransaction
from .promotions import COLLECTION, check_window, parse_promotion

logger = logging.getLogger("comanda.ledger")


@dataclass(frozen=True)
class RedemptionOutcome:
    promotion_id: str
    order_id: str
    code: str
    already_consumed: bool
    times_redeemed: int
    remaining_global: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "promotionId": self.promotion_id,
            "orderId": self.order_id,
            "code": self.code,
            "alreadyConsumed": self.already_consumed,
            "timesRedeemed": self.times_redeemed,
            "remainingGlobal": self.remaining_global,
        }


def _remaining(limit: Optional[int], times: int) -> Optional[int]:
    return None if limit is None else max(0, limit - times)


def order_carries(order: Mapping[str, Any], promotion_id: str, code: str) -> bool:
    """True if the order was priced with this promotion (by id or by code)."""
    if normalize_code(order.get("promotionCode")) == code:
        return True
    applied = list(order.get("promotions") or []) + list(order.get("appliedPromotions") or [])
    for ref in applied:
        if not isinstance(ref, Mapping):
            continue
        if (ref.get("promotionId") or ref.get("promoId")) == promotion_id:
            return True
        if normalize_code(ref.get("code")) == code:
            return True
    return False


def consume(
    store: DocumentStore,
    promotion_id: str,
    code: str,
    order_id: str,
    caller_id: Optional[str] = None,
    clock: Clock = utcnow,
) -> RedemptionOutcome:
    wanted = normalize_code(code)
    if not promotion_id or not wanted or not order_id:
        raise InvalidPayload("promotionId, code and orderId are required")
    now = clock()

    order_path = f"orders/{order_id}"
    promo_path = f"{COLLECTION}/{promotion_id}"
    redemption_path = f"{promo_path}/redemptions/{order_id}"
    usage_path = f"{promo_path}/usages/{caller_id}" if caller_id else None

    def body(tx: StoreTransaction) -> RedemptionOutcome:
        order = tx.get(order_path)
        promo_doc = tx.get(promo_path)
        redemption = tx.get(redemption_path)
        usage = tx.get(usage_path) if usage_path else None

        if order is None:
            raise OrderNotFound(order_id)
        if promo_doc is None:
            raise PromotionNotFound(promotion_id=promotion_id)
        promotion = parse_promotion(promo_doc, promotion_id)
        limit = promotion.constraints.global_limit
        times = promotion.times_redeemed

        if redemption is not None:
            return RedemptionOutcome(
                promotion_id, order_id, wanted, already_consumed=True,
                times_redeemed=times, remaining_global=_remaining(limit, times),
            )

        if not order_carries(order, promotion_id, wanted):
            raise PromotionNotApplied(promotion_id, order_id)
        if promotion.code != wanted:
            raise CodeMismatch(promotion_id, wanted)
        if not promotion.active:
            raise Inactive(promotion_id)
        check_window(promotion, now)
        if limit is not None and times >= limit:
            raise GlobalLimitExceeded(promotion_id, limit, times)

        usage_count = int((usage or {}).get("count") or 0)
        per_caller = promotion.constraints.per_caller_limit
        if caller_id and per_caller is not None and usage_count >= per_caller:
            raise PerCallerLimitExceeded(promotion_id, caller_id, per_caller, usage_count)

        tx.set(redemption_path, {
            "orderId": order_id,
            "code": wanted,
            "callerId": caller_id,
            "at": now,
        })
        tx.update(promo_path, {"timesRedeemed": times + 1, "updatedAt": now})
        if usage_path:
            tx.set(usage_path, {"count": usage_count + 1, "lastUsedAt": now}, merge=True)

        return RedemptionOutcome(
            promotion_id, order_id, wanted, already_consumed=False,
            times_redeemed=times + 1, remaining_global=_remaining(limit, times + 1),
        )

    outcome = store.run_transaction(body)
    if not outcome.already_consumed:
        logger.info("promotion %s redeemed by order %s (%d so far)",
                    promotion_id, order_id, outcome.times_redeemed)
    return outcome
