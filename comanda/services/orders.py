# comanda/services/orders.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..clock import Clock, utcnow
from ..errors import InvalidPayload, NotEditableStatus, OrderNotFound
from ..identity import Actor
from ..schemas.orders import AppliedPromotion, Checkout, Order, StatusHistoryEntry
from ..settings import settings
from ..store import DocumentStore, StoreTransaction
from .catalog import CatalogLookup
from .normalize import normalize_lines, normalize_order_type
from .pricing import compute_amounts, price_line
from .promotions import find_by_code
from .quotes import build_quote
from .status import TERMINAL, Channel, OrderStatus, normalize_status, operative_channel

logger = logging.getLogger("comanda.orders")

COLLECTION = "orders"
MAX_LIST = 200

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _oid():
    return uuid.uuid4().hex[:24]


def _path(order_id: str) -> str:
    return f"{COLLECTION}/{order_id}"


def resolve_order_type(checkout: Checkout) -> str:
    display = normalize_order_type(checkout.type) or normalize_order_type(checkout.order_info.get("type"))
    if display is None:
        raise InvalidPayload(f"unknown order type {checkout.type!r}", type=checkout.type)
    return display


def create_order(
    store: DocumentStore,
    checkout: Checkout,
    actor: Actor,
    catalog: Optional[CatalogLookup] = None,
    clock: Clock = utcnow,
    tax_rate_bps: Optional[int] = None,
    service_fee_bps: Optional[int] = None,
) -> Order:
    """
    Price a checkout and persist it as a ``placed`` order.

    Tax and service-fee rates default to settings and are frozen on the order,
    so later appends price with the same rates.
    """
    lines = normalize_lines(checkout.items)
    display = resolve_order_type(checkout)
    channel = operative_channel({
        "type": display,
        "orderInfo": checkout.order_info,
        "deliveryAddress": checkout.delivery_address,
    })

    table = str(checkout.table_number).strip() if checkout.table_number is not None else ""
    if display == "dine_in" and channel is Channel.DINE_IN and not table:
        raise InvalidPayload("dine-in orders need a table number")

    promotion = find_by_code(store, checkout.promotion_code) if checkout.promotion_code else None
    tax_bps = settings.tax_rate_bps if tax_rate_bps is None else tax_rate_bps
    fee_bps = settings.service_fee_bps if service_fee_bps is None else service_fee_bps

    now = clock()
    quote = build_quote(
        lines, display, now,
        promotion=promotion, catalog=catalog, tip=checkout.tip,
        tax_rate_bps=tax_bps, service_fee_bps=fee_bps,
    )

    applied: List[AppliedPromotion] = []
    if quote.evaluation is not None:
        applied.append(AppliedPromotion(
            promotion_id=quote.evaluation.promotion_id,
            code=quote.evaluation.code,
            discount_total=quote.evaluation.discount_total,
        ))

    order = Order(
        id=_oid(),
        type=display,
        channel=channel.value,
        status=OrderStatus.PLACED.value,
        status_history=[StatusHistoryEntry(
            at=now, actor_id=actor.id, to_status=OrderStatus.PLACED.value, kind="created",
        )],
        lines=quote.lines,
        amounts=quote.amounts,
        tax_rate_bps=tax_bps,
        service_fee_bps=fee_bps,
        currency=checkout.currency or settings.currency,
        table_number=table or None,
        delivery_address=checkout.delivery_address,
        order_info=checkout.order_info,
        notes=checkout.notes,
        promotions=applied,
        created_by=actor.id,
        created_at=now,
        updated_at=now,
    )
    doc = order.to_doc()

    def body(tx: StoreTransaction) -> None:
        tx.set(_path(order.id), doc)

    store.run_transaction(body)
    logger.info("order %s created by %s (%s, total %d)", order.id, actor.id, display, order.amounts.total)
    return order


def append_items(
    store: DocumentStore,
    order_id: str,
    raw_items: Sequence[Mapping[str, Any]],
    actor: Actor,
    clock: Clock = utcnow,
) -> Order:
    """
    Add lines to an open order.

    The discount already allocated stays as it is; new lines carry none. An
    order that had moved past ``placed`` goes back to ``placed`` so the kitchen
    sees the new lines.
    """
    if not raw_items:
        raise InvalidPayload("no order lines provided")
    now = clock()
    batch_id = _oid()
    path = _path(order_id)

    def body(tx: StoreTransaction) -> Dict[str, Any]:
        doc = tx.get(path)
        if doc is None:
            raise OrderNotFound(order_id)
        order = Order.from_doc(order_id, doc)
        current = normalize_status(order.status)
        if current in TERMINAL:
            raise NotEditableStatus(order_id, order.status)

        added = normalize_lines(raw_items, start=len(order.lines))
        for line in added:
            line.added_at = now
            line.added_batch_id = batch_id
        lines = order.lines + added

        amounts = compute_amounts(
            sum(price_line(ln) for ln in lines),
            discount=order.amounts.discount,
            tip=order.amounts.tip,
            tax_rate_bps=order.tax_rate_bps,
            service_fee_bps=order.service_fee_bps,
        )
        patch: Dict[str, Any] = {
            "lines": [ln.to_doc() for ln in lines],
            "amounts": amounts.to_doc(),
            "updatedAt": now,
        }
        if current is not OrderStatus.PLACED:
            reopened = StatusHistoryEntry(
                at=now, actor_id=actor.id, from_status=order.status,
                to_status=OrderStatus.PLACED.value, kind="reopened",
            )
            patch["status"] = OrderStatus.PLACED.value
            patch["statusHistory"] = list(doc.get("statusHistory") or []) + [reopened.to_doc()]
        tx.update(path, patch)
        return {**doc, **patch}

    updated = Order.from_doc(order_id, store.run_transaction(body))
    logger.info("order %s: %d line(s) appended by %s (batch %s)",
                order_id, len(raw_items), actor.id, batch_id)
    return updated


def get_order(store: DocumentStore, order_id: str) -> Order:
    doc = store.get(_path(order_id))
    if doc is None:
        raise OrderNotFound(order_id)
    return Order.from_doc(order_id, doc)


def list_orders(
    store: DocumentStore,
    statuses: Optional[Iterable[str]] = None,
    types: Optional[Iterable[str]] = None,
    limit: int = 50,
) -> List[Order]:
    """Newest first. Unknown status or type names are ignored."""
    limit = max(1, min(MAX_LIST, int(limit)))

    filters = []
    wanted_status = {s.value for s in map(normalize_status, statuses or []) if s is not None}
    if wanted_status:
        filters.append(("status", "in", sorted(wanted_status)))
    wanted_types = {t for t in map(normalize_order_type, types or []) if t is not None}

    orders = [Order.from_doc(row["id"], row) for row in store.where(COLLECTION, filters)]
    if wanted_types:
        orders = [o for o in orders if o.type in wanted_types]
    orders.sort(key=lambda o: o.created_at or _EPOCH, reverse=True)
    return orders[:limit]
