# comanda/routes/orders.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import AliasChoices, Field

from ..clock import Clock
from ..errors import NotAuthorized
from ..identity import Actor
from ..schemas.base import CamelModel
from ..schemas.orders import Checkout, Order
from ..services.catalog import StoreCatalog
from ..services.orders import append_items, create_order, get_order, list_orders
from ..services.status import RoleTransitionPolicy, cancel_order, request_transition, status_history
from ..store import DocumentStore
from .deps import get_actor, get_catalog, get_clock, get_store

router = APIRouter(prefix="/orders", tags=["orders"])

policy = RoleTransitionPolicy()


class StatusBody(CamelModel):
    status: str
    idempotency_key: Optional[str] = None


class AppendBody(CamelModel):
    items: List[Dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "lines", "orderLines"),
    )


def _out(order: Order) -> Dict[str, Any]:
    return order.model_dump(by_alias=True, mode="json")


def _split(values: Optional[List[str]]) -> List[str]:
    # ?status=placed,kitchen_done and ?status=placed&status=kitchen_done both work
    out: List[str] = []
    for v in values or []:
        out.extend(p.strip() for p in v.split(",") if p.strip())
    return out


@router.post("", status_code=201)
def create_order_endpoint(
    body: Checkout,
    store: DocumentStore = Depends(get_store),
    catalog: StoreCatalog = Depends(get_catalog),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
):
    return _out(create_order(store, body, actor, catalog=catalog, clock=clock))


@router.get("")
def list_orders_endpoint(
    status: Optional[List[str]] = Query(None),
    type: Optional[List[str]] = Query(None),
    limit: int = Query(50),
    store: DocumentStore = Depends(get_store),
):
    """Recent orders for the admin boards, newest first."""
    return [_out(o) for o in list_orders(store, _split(status), _split(type), limit)]


@router.get("/{order_id}")
def get_order_endpoint(order_id: str, store: DocumentStore = Depends(get_store)):
    return _out(get_order(store, order_id))


@router.patch("/{order_id}/status")
def update_status_endpoint(
    order_id: str,
    body: StatusBody,
    idempotency_key: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
):
    result = request_transition(
        store, order_id, body.status, actor,
        idempotency_key=body.idempotency_key or idempotency_key,
        policy=policy, clock=clock,
    )
    return result.to_dict()


@router.get("/{order_id}/status/logs")
def status_logs_endpoint(
    order_id: str,
    limit: int = Query(50),
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    if not actor.is_admin:
        raise NotAuthorized(actor.id, "read status logs", order_id=order_id)
    return {
        "orderId": order_id,
        "logs": [e.model_dump(by_alias=True, mode="json") for e in status_history(store, order_id, limit)],
    }


@router.post("/{order_id}/append")
def append_items_endpoint(
    order_id: str,
    body: AppendBody,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
):
    return _out(append_items(store, order_id, body.items, actor, clock=clock))


@router.delete("/{order_id}")
def cancel_order_endpoint(
    order_id: str,
    idempotency_key: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
):
    result = cancel_order(store, order_id, actor, idempotency_key=idempotency_key, clock=clock)
    return result.to_dict()
