# comanda/services/status.py
"""
Order status state machine.

Two chains, one per operative channel:

    dine_in:  placed -> kitchen_in_progress -> kitchen_done -> ready_to_close -> closed
    delivery: placed -> kitchen_in_progress -> kitchen_done -> assigned_to_courier
              -> on_the_way -> delivered -> closed

A transition is legal when it moves exactly one step, forward or back, along
the order's chain. ``closed`` and ``cancelled`` are terminal. Cancelling is
not a step in either chain; it follows its own rules (see ``_check_cancel``).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from ..clock import Clock, utcnow
from ..errors import InvalidPayload, InvalidTransition, NotAuthorized, OrderNotFound
from ..identity import Actor
from ..schemas.orders import StatusHistoryEntry
from ..store import DocumentStore, StoreTransaction
from .normalize import normalize_order_type

logger = logging.getLogger("comanda.status")

COLLECTION = "orders"


class OrderStatus(str, Enum):
    CART = "cart"
    PLACED = "placed"
    KITCHEN_IN_PROGRESS = "kitchen_in_progress"
    KITCHEN_DONE = "kitchen_done"
    READY_TO_CLOSE = "ready_to_close"
    ASSIGNED_TO_COURIER = "assigned_to_courier"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class Channel(str, Enum):
    DINE_IN = "dine_in"
    DELIVERY = "delivery"


FLOWS: Dict[Channel, tuple] = {
    Channel.DINE_IN: (
        OrderStatus.PLACED,
        OrderStatus.KITCHEN_IN_PROGRESS,
        OrderStatus.KITCHEN_DONE,
        OrderStatus.READY_TO_CLOSE,
        OrderStatus.CLOSED,
    ),
    Channel.DELIVERY: (
        OrderStatus.PLACED,
        OrderStatus.KITCHEN_IN_PROGRESS,
        OrderStatus.KITCHEN_DONE,
        OrderStatus.ASSIGNED_TO_COURIER,
        OrderStatus.ON_THE_WAY,
        OrderStatus.DELIVERED,
        OrderStatus.CLOSED,
    ),
}

TERMINAL: FrozenSet[OrderStatus] = frozenset({OrderStatus.CLOSED, OrderStatus.CANCELLED})

# legacy spellings still written by older clients
_ALIASES: Dict[str, OrderStatus] = {
    "ready": OrderStatus.READY_TO_CLOSE,
    "served": OrderStatus.READY_TO_CLOSE,
    "completed": OrderStatus.CLOSED,
    "ready_for_delivery": OrderStatus.ASSIGNED_TO_COURIER,
    "out_for_delivery": OrderStatus.ON_THE_WAY,
    "canceled": OrderStatus.CANCELLED,
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s\-_]+")


def normalize_status(raw: Any) -> Optional[OrderStatus]:
    """
    >>> normalize_status("kitchenInProgress")
    <OrderStatus.KITCHEN_IN_PROGRESS: 'kitchen_in_progress'>
    >>> normalize_status("out-for-delivery")
    <OrderStatus.ON_THE_WAY: 'on_the_way'>
    """
    if isinstance(raw, OrderStatus):
        return raw
    s = str(raw or "").strip()
    if not s:
        return None
    s = _SEPARATORS.sub("_", _CAMEL_BOUNDARY.sub(r"_\1", s)).lower().strip("_")
    if s in _ALIASES:
        return _ALIASES[s]
    try:
        return OrderStatus(s)
    except ValueError:
        return None


def operative_channel(order: Mapping[str, Any]) -> Channel:
    """Delivery if anything on the order says so; pickup and unknown labels run the dine-in chain."""
    info = order.get("orderInfo") or {}
    labels = (info.get("type"), order.get("type"), order.get("channel"))
    if any(normalize_order_type(label) == "delivery" for label in labels):
        return Channel.DELIVERY
    if str(order.get("deliveryAddress") or "").strip() or str(info.get("address") or "").strip():
        return Channel.DELIVERY
    return Channel.DINE_IN


def _value(status: Any) -> Optional[str]:
    return status.value if isinstance(status, Enum) else status


def check_transition(current: Optional[OrderStatus], requested: OrderStatus, channel: Channel) -> None:
    flow = FLOWS[Channel(channel)]
    if current is None or current in TERMINAL or current not in flow or requested not in flow:
        raise InvalidTransition(_value(current), _value(requested), _value(channel))
    if abs(flow.index(requested) - flow.index(current)) != 1:
        raise InvalidTransition(_value(current), _value(requested), _value(channel))


def can_transition(current: Optional[OrderStatus], requested: OrderStatus, channel: Channel) -> bool:
    try:
        check_transition(current, requested, channel)
    except InvalidTransition:
        return False
    return True


def is_backward(current: Optional[OrderStatus], requested: OrderStatus, channel: Channel) -> bool:
    flow = FLOWS[Channel(channel)]
    if current not in flow or requested not in flow:
        return False
    return flow.index(requested) < flow.index(current)


# --- authorization ------------------------------------------------------------

TransitionPolicy = Callable[[Actor, Optional[OrderStatus], OrderStatus, Channel], bool]


class RoleTransitionPolicy:
    """Which role may move an order into which status. Admins may do anything."""

    GRANTS: Dict[str, Dict[Channel, FrozenSet[OrderStatus]]] = {
        "kitchen": {
            Channel.DINE_IN: frozenset({
                OrderStatus.PLACED, OrderStatus.KITCHEN_IN_PROGRESS,
                OrderStatus.KITCHEN_DONE, OrderStatus.READY_TO_CLOSE,
            }),
            Channel.DELIVERY: frozenset({
                OrderStatus.PLACED, OrderStatus.KITCHEN_IN_PROGRESS,
                OrderStatus.KITCHEN_DONE, OrderStatus.ASSIGNED_TO_COURIER,
            }),
        },
        "waiter": {Channel.DINE_IN: frozenset({OrderStatus.READY_TO_CLOSE, OrderStatus.CLOSED})},
        "cashier": {Channel.DINE_IN: frozenset({OrderStatus.READY_TO_CLOSE, OrderStatus.CLOSED})},
        "delivery": {Channel.DELIVERY: frozenset({OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED})},
        "courier": {Channel.DELIVERY: frozenset({OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED})},
    }

    def __call__(self, actor: Actor, current: Optional[OrderStatus],
                 target: OrderStatus, channel: Channel) -> bool:
        if actor.is_admin:
            return True
        return any(
            target in self.GRANTS.get(role, {}).get(channel, frozenset())
            for role in actor.roles
        )


def _check_cancel(order_id: str, doc: Mapping[str, Any], current: Optional[OrderStatus],
                  actor: Actor, channel: Channel) -> None:
    if current is None or current in TERMINAL:
        raise InvalidTransition(_value(current) or doc.get("status"), OrderStatus.CANCELLED.value, channel.value)
    if actor.is_admin:
        return
    if actor.id and actor.id == doc.get("createdBy"):
        if current is OrderStatus.PLACED:
            return
        raise InvalidTransition(current.value, OrderStatus.CANCELLED.value, channel.value)
    raise NotAuthorized(actor.id, "cancel this order", order_id=order_id)


# --- transitions --------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    order_id: str
    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    channel: Channel
    applied: bool
    at: Optional[datetime] = None
    backward: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "fromStatus": _value(self.from_status),
            "toStatus": self.to_status.value,
            "channel": self.channel.value,
            "applied": self.applied,
            "at": self.at,
        }


def request_transition(
    store: DocumentStore,
    order_id: str,
    requested: Any,
    actor: Actor,
    idempotency_key: Optional[str] = None,
    policy: Optional[TransitionPolicy] = None,
    clock: Clock = utcnow,
) -> TransitionResult:
    """
    Move an order to ``requested`` in one store transaction.

    A repeated call carrying an idempotency key that is already in the history
    for the same target returns ``applied=False`` and writes nothing.
    """
    target = normalize_status(requested)
    if target is None:
        raise InvalidPayload(f"unknown status {requested!r}", status=requested)
    now = clock()
    path = f"{COLLECTION}/{order_id}"

    def body(tx: StoreTransaction) -> TransitionResult:
        doc = tx.get(path)
        if doc is None:
            raise OrderNotFound(order_id)
        channel = operative_channel(doc)
        current = normalize_status(doc.get("status"))
        history = list(doc.get("statusHistory") or [])

        if idempotency_key:
            for entry in history:
                if (entry.get("idempotencyKey") == idempotency_key
                        and normalize_status(entry.get("toStatus")) is target):
                    return TransitionResult(order_id, current, target, channel, applied=False)

        if target is OrderStatus.CANCELLED:
            _check_cancel(order_id, doc, current, actor, channel)
            kind = "cancelled"
        else:
            check_transition(current, target, channel)
            if policy is not None and not policy(actor, current, target, channel):
                raise NotAuthorized(actor.id, f"move orders to {target.value}", order_id=order_id)
            kind = "transition"

        entry = StatusHistoryEntry(
            at=now,
            actor_id=actor.id,
            from_status=_value(current) or doc.get("status"),
            to_status=target.value,
            idempotency_key=idempotency_key,
            kind=kind,
        )
        tx.update(path, {
            "status": target.value,
            "statusHistory": history + [entry.to_doc()],
            "updatedAt": now,
        })
        return TransitionResult(
            order_id, current, target, channel, applied=True, at=now,
            backward=is_backward(current, target, channel),
        )

    result = store.run_transaction(body)
    if result.applied:
        logger.info("order %s: %s -> %s by %s", order_id,
                    _value(result.from_status), result.to_status.value, actor.id)
        if result.backward:
            logger.warning("order %s moved backward %s -> %s by %s", order_id,
                           _value(result.from_status), result.to_status.value, actor.id)
    return result


def cancel_order(store: DocumentStore, order_id: str, actor: Actor,
                 idempotency_key: Optional[str] = None, clock: Clock = utcnow) -> TransitionResult:
    return request_transition(store, order_id, OrderStatus.CANCELLED, actor,
                              idempotency_key=idempotency_key, clock=clock)


def status_history(store: DocumentStore, order_id: str, limit: int = 50) -> List[StatusHistoryEntry]:
    doc = store.get(f"{COLLECTION}/{order_id}")
    if doc is None:
        raise OrderNotFound(order_id)
    entries = [StatusHistoryEntry.model_validate(e) for e in doc.get("statusHistory") or []]
    entries.reverse()
    return entries[:max(1, limit)]
