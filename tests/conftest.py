"""Shared fixtures: every test gets its own in-memory store and a frozen clock."""
from __future__ import annotations

import os

# Set env BEFORE any app imports
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("TAX_RATE_BPS", "0")
os.environ.setdefault("SERVICE_FEE_BPS", "0")

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from comanda.identity import Actor
from comanda.schemas.orders import Checkout
from comanda.services.orders import create_order
from comanda.store import MemoryStore

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


MENU_ITEMS: Dict[str, Dict[str, Any]] = {
    "burger": {"name": "Burger", "categoryId": "mains", "subcategoryId": "burgers"},
    "pizza": {"name": "Pizza", "categoryId": "mains", "subcategoryId": "pizzas"},
    "fries": {"name": "Fries", "categoryId": "sides", "subcategoryId": "fried"},
    "soda": {"name": "Soda", "categoryId": "drinks", "subcategoryId": "soft"},
}

PROMOTIONS: Dict[str, Dict[str, Any]] = {
    "ten": {"code": "TEN", "name": "10% off", "type": "percent", "value": 10},
    "five-off": {"code": "FIVEOFF", "type": "fixed", "value": 500},
    "burgers": {"code": "BURGER20", "type": "percent", "value": 20,
                "scope": {"subcategories": ["burgers"]}},
    "mains": {"code": "MAINS", "type": "percent", "value": 50,
              "scope": {"categories": ["mains"]}},
    "limited": {"code": "LIMITED", "type": "percent", "value": 10,
                "constraints": {"globalLimit": 10}, "timesRedeemed": 10},
    "once": {"code": "ONCE", "type": "percent", "value": 10,
             "constraints": {"perUserLimit": 1, "globalLimit": 100}},
    "mesa": {"code": "MESA", "type": "percent", "value": 10,
             "constraints": {"allowedOrderTypes": ["dine-in"]}},
    "soon": {"code": "SOON", "type": "percent", "value": 10,
             "constraints": {"startAt": datetime(2030, 1, 1, tzinfo=timezone.utc)}},
    "old": {"code": "OLD", "type": "percent", "value": 10,
            "constraints": {"endAt": datetime(2020, 1, 1, tzinfo=timezone.utc)}},
    "off": {"code": "PAUSED", "type": "percent", "value": 10, "active": False},
    "min": {"code": "MIN50", "type": "percent", "value": 10,
            "constraints": {"minTargetSubtotal": 5000}},
    "tiny": {"code": "TINY", "type": "percent", "value": 1},
}


def line(menu_item_id: str, price: int, qty: int = 1, **extra: Any) -> Dict[str, Any]:
    """Raw checkout line priced in cents."""
    return {"menuItemId": menu_item_id, "name": menu_item_id.title(),
            "quantity": qty, "basePriceCents": price, **extra}


# ---------- Fixtures ----------

@pytest.fixture()
def store() -> MemoryStore:
    s = MemoryStore(max_attempts=5)
    for item_id, item in MENU_ITEMS.items():
        s.set(f"menuItems/{item_id}", item)
    for promo_id, promo in PROMOTIONS.items():
        s.set(f"promotions/{promo_id}", promo)
    return s


@pytest.fixture()
def clock():
    return lambda: NOW


@pytest.fixture()
def admin() -> Actor:
    return Actor.of("admin-1", ["admin"])


@pytest.fixture()
def waiter() -> Actor:
    return Actor.of("waiter-1", ["waiter"])


@pytest.fixture()
def kitchen() -> Actor:
    return Actor.of("kitchen-1", ["kitchen"])


@pytest.fixture()
def courier() -> Actor:
    return Actor.of("courier-1", ["courier"])


@pytest.fixture()
def place_order(store, clock, waiter):
    """Factory: create an order through the order service and return it."""
    def _place(items: List[Dict[str, Any]] = None, actor: Actor = None, **fields: Any):
        payload: Dict[str, Any] = {"type": "dine_in", "tableNumber": "7"}
        payload.update(fields)
        payload["items"] = items or [line("burger", 1000)]
        return create_order(store, Checkout.model_validate(payload), actor or waiter, clock=clock)
    return _place


@pytest.fixture()
def client(store, clock):
    """FastAPI TestClient (sync) wired to the test store and clock."""
    from fastapi.testclient import TestClient
    from comanda.main import app
    from comanda.routes.deps import get_clock, get_store

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
