# comanda/errors.py
"""
Typed engine errors.

Every failure the engine surfaces is one of these. Each carries a stable
``code`` and enough ids/amounts in ``details`` for the calling layer to render
a precise message; ``http_status`` is what the FastAPI handler answers with.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class OrderEngineError(Exception):
    code = "engine_error"
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class InvalidPayload(OrderEngineError):
    code = "invalid_payload"
    http_status = 422


class NotAuthorized(OrderEngineError):
    code = "not_authorized"
    http_status = 403

    def __init__(self, actor_id: Optional[str], action: str, **details: Any):
        super().__init__(
            f"Actor {actor_id!r} may not {action}",
            actor_id=actor_id, action=action, **details,
        )


class Contention(OrderEngineError):
    code = "contention"
    http_status = 503

    def __init__(self, attempts: int):
        super().__init__(
            f"Transaction could not commit after {attempts} attempts",
            attempts=attempts,
        )


# --- orders -------------------------------------------------------------------

class OrderNotFound(OrderEngineError):
    code = "order_not_found"
    http_status = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id!r} not found", order_id=order_id)


class InvalidTransition(OrderEngineError):
    code = "invalid_transition"

    def __init__(self, from_status: Optional[str], to_status: str, channel: str):
        pretty = lambda s: str(s or "").replace("_", " ")
        super().__init__(
            f"Invalid transition: {pretty(from_status)} -> {pretty(to_status)} (channel={channel})",
            from_status=from_status, to_status=to_status, channel=channel,
        )


class NotEditableStatus(OrderEngineError):
    code = "not_editable_status"
    http_status = 409

    def __init__(self, order_id: str, status: str):
        super().__init__(
            f"Order {order_id!r} is {status} and can no longer be edited",
            order_id=order_id, status=status,
        )


# --- promotions ---------------------------------------------------------------

class PromotionNotFound(OrderEngineError):
    code = "promotion_not_found"
    http_status = 404

    def __init__(self, promotion_id: Optional[str] = None, code: Optional[str] = None):
        ref = promotion_id or code
        super().__init__(
            f"Promotion {ref!r} not found",
            promotion_id=promotion_id, promotion_code=code,
        )


class InvalidPromotion(OrderEngineError):
    code = "invalid_promotion"
    http_status = 422

    def __init__(self, promotion_id: Optional[str], problems: List[str]):
        super().__init__(
            f"Promotion {promotion_id!r} is malformed: {'; '.join(problems)}",
            promotion_id=promotion_id, problems=problems,
        )


class CodeMismatch(OrderEngineError):
    code = "code_mismatch"

    def __init__(self, promotion_id: str, promotion_code: str):
        super().__init__(
            f"Code {promotion_code!r} does not match promotion {promotion_id!r}",
            promotion_id=promotion_id, promotion_code=promotion_code,
        )


class Inactive(OrderEngineError):
    code = "promotion_inactive"

    def __init__(self, promotion_id: str):
        super().__init__(f"Promotion {promotion_id!r} is not active", promotion_id=promotion_id)


class NotStarted(OrderEngineError):
    code = "promotion_not_started"

    def __init__(self, promotion_id: str, start_at: Any):
        super().__init__(
            f"Promotion {promotion_id!r} has not started yet",
            promotion_id=promotion_id, start_at=start_at,
        )


class Expired(OrderEngineError):
    code = "promotion_expired"

    def __init__(self, promotion_id: str, end_at: Any):
        super().__init__(
            f"Promotion {promotion_id!r} has expired",
            promotion_id=promotion_id, end_at=end_at,
        )


class ChannelNotAllowed(OrderEngineError):
    code = "channel_not_allowed"

    def __init__(self, promotion_id: str, channel: Optional[str], allowed: List[str]):
        super().__init__(
            f"Promotion {promotion_id!r} does not apply to {channel} orders",
            promotion_id=promotion_id, channel=channel, allowed=allowed,
        )


class NoEligibleItems(OrderEngineError):
    code = "no_eligible_items"

    def __init__(self, promotion_id: str):
        super().__init__(
            f"No items in the order are eligible for promotion {promotion_id!r}",
            promotion_id=promotion_id,
        )


class BelowMinimum(OrderEngineError):
    code = "below_minimum"

    def __init__(self, promotion_id: str, target_subtotal: int, minimum: int):
        super().__init__(
            f"Eligible subtotal {target_subtotal} is below the minimum {minimum}",
            promotion_id=promotion_id, target_subtotal=target_subtotal, minimum=minimum,
        )


class ZeroDiscount(OrderEngineError):
    code = "zero_discount"

    def __init__(self, promotion_id: str, target_subtotal: int):
        super().__init__(
            f"Promotion {promotion_id!r} yields no discount",
            promotion_id=promotion_id, target_subtotal=target_subtotal,
        )


class GlobalLimitExceeded(OrderEngineError):
    code = "global_limit_exceeded"
    http_status = 409

    def __init__(self, promotion_id: str, limit: int, times_redeemed: int):
        super().__init__(
            f"Promotion {promotion_id!r} reached its global limit of {limit}",
            promotion_id=promotion_id, limit=limit, times_redeemed=times_redeemed,
        )


class PerCallerLimitExceeded(OrderEngineError):
    code = "per_caller_limit_exceeded"
    http_status = 409

    def __init__(self, promotion_id: str, caller_id: str, limit: int, usage_count: int):
        super().__init__(
            f"Caller {caller_id!r} reached the limit of {limit} for promotion {promotion_id!r}",
            promotion_id=promotion_id, caller_id=caller_id,
            limit=limit, usage_count=usage_count,
        )


class PromotionNotApplied(OrderEngineError):
    code = "promotion_not_applied"

    def __init__(self, promotion_id: str, order_id: str):
        super().__init__(
            f"Order {order_id!r} does not carry promotion {promotion_id!r}",
            promotion_id=promotion_id, order_id=order_id,
        )


# --- invoices -----------------------------------------------------------------

class InvoiceNumberingDisabled(OrderEngineError):
    code = "invoice_numbering_disabled"

    def __init__(self):
        super().__init__("Invoice numbering is disabled")
