"""Status state machine: pure rules and transactional transitions."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from comanda.errors import InvalidPayload, InvalidTransition, NotAuthorized, OrderNotFound
from comanda.identity import Actor
from comanda.services.status import (
    Channel,
    OrderStatus,
    RoleTransitionPolicy,
    can_transition,
    cancel_order,
    check_transition,
    normalize_status,
    operative_channel,
    request_transition,
    status_history,
)

S = OrderStatus


# ---------- pure rules ----------

@pytest.mark.parametrize("current,requested,channel,ok", [
    (S.PLACED, S.KITCHEN_IN_PROGRESS, Channel.DINE_IN, True),
    (S.KITCHEN_DONE, S.KITCHEN_IN_PROGRESS, Channel.DINE_IN, True),
    (S.READY_TO_CLOSE, S.CLOSED, Channel.DINE_IN, True),
    (S.PLACED, S.KITCHEN_DONE, Channel.DINE_IN, False),
    (S.KITCHEN_DONE, S.ASSIGNED_TO_COURIER, Channel.DINE_IN, False),
    (S.KITCHEN_DONE, S.ASSIGNED_TO_COURIER, Channel.DELIVERY, True),
    (S.KITCHEN_IN_PROGRESS, S.ASSIGNED_TO_COURIER, Channel.DELIVERY, False),
    (S.DELIVERED, S.CLOSED, Channel.DELIVERY, True),
    (S.KITCHEN_DONE, S.READY_TO_CLOSE, Channel.DELIVERY, False),
    (S.CLOSED, S.READY_TO_CLOSE, Channel.DINE_IN, False),
    (S.PLACED, S.PLACED, Channel.DINE_IN, False),
    (S.PLACED, S.CART, Channel.DINE_IN, False),
])
def test_one_step_rule(current, requested, channel, ok):
    assert can_transition(current, requested, channel) is ok


def test_invalid_transition_carries_context():
    with pytest.raises(InvalidTransition) as exc:
        check_transition(S.KITCHEN_IN_PROGRESS, S.ASSIGNED_TO_COURIER, Channel.DELIVERY)
    assert exc.value.details == {
        "from_status": "kitchen_in_progress",
        "to_status": "assigned_to_courier",
        "channel": "delivery",
    }
    assert "kitchen in progress -> assigned to courier" in exc.value.message


@pytest.mark.parametrize("raw,expected", [
    ("kitchen_in_progress", S.KITCHEN_IN_PROGRESS),
    ("kitchenInProgress", S.KITCHEN_IN_PROGRESS),
    ("kitchen-in-progress", S.KITCHEN_IN_PROGRESS),
    ("Ready To Close", S.READY_TO_CLOSE),
    ("ready", S.READY_TO_CLOSE),
    ("served", S.READY_TO_CLOSE),
    ("completed", S.CLOSED),
    ("ready_for_delivery", S.ASSIGNED_TO_COURIER),
    ("outForDelivery", S.ON_THE_WAY),
    ("canceled", S.CANCELLED),
    ("flying", None),
    ("", None),
])
def test_normalize_status(raw, expected):
    assert normalize_status(raw) is expected


@pytest.mark.parametrize("doc,expected", [
    ({"type": "delivery"}, Channel.DELIVERY),
    ({"type": "dine_in", "orderInfo": {"type": "envio"}}, Channel.DELIVERY),
    ({"type": "pickup", "deliveryAddress": "4a Calle 5-10"}, Channel.DELIVERY),
    ({"orderInfo": {"address": "Zona 10"}}, Channel.DELIVERY),
    ({"type": "pickup"}, Channel.DINE_IN),
    ({"type": "takeaway", "deliveryAddress": "  "}, Channel.DINE_IN),
    ({}, Channel.DINE_IN),
])
def test_operative_channel(doc, expected):
    assert operative_channel(doc) is expected


# ---------- transitions through the store ----------

def test_transition_appends_history(store, clock, place_order, kitchen):
    order = place_order()
    result = request_transition(store, order.id, "kitchen_in_progress", kitchen, clock=clock)
    assert result.applied
    assert result.from_status is S.PLACED

    doc = store.get(f"orders/{order.id}")
    assert doc["status"] == "kitchen_in_progress"
    assert [e["kind"] for e in doc["statusHistory"]] == ["created", "transition"]
    last = doc["statusHistory"][-1]
    assert last["fromStatus"] == "placed"
    assert last["actorId"] == "kitchen-1"
    assert doc["updatedAt"] == clock()


def test_replay_with_same_key_is_a_noop(store, clock, place_order, kitchen):
    order = place_order()
    first = request_transition(store, order.id, "kitchen_in_progress", kitchen,
                               idempotency_key="k-1", clock=clock)
    second = request_transition(store, order.id, "kitchen_in_progress", kitchen,
                                idempotency_key="k-1", clock=clock)
    assert first.applied and not second.applied
    assert len(store.get(f"orders/{order.id}")["statusHistory"]) == 2


def test_same_status_without_key_is_rejected(store, clock, place_order, kitchen):
    order = place_order()
    request_transition(store, order.id, "kitchen_in_progress", kitchen, clock=clock)
    with pytest.raises(InvalidTransition):
        request_transition(store, order.id, "kitchen_in_progress", kitchen, clock=clock)


def test_skipping_a_step_writes_nothing(store, clock, place_order, kitchen):
    order = place_order()
    before = store.get(f"orders/{order.id}")
    with pytest.raises(InvalidTransition):
        request_transition(store, order.id, "kitchen_done", kitchen, clock=clock)
    assert store.get(f"orders/{order.id}") == before


def test_racing_transitions_apply_exactly_once(store, clock, place_order, kitchen):
    store.max_attempts = 100
    order = place_order()
    n = 8
    barrier = threading.Barrier(n)

    def attempt(_):
        barrier.wait()
        try:
            return request_transition(store, order.id, "kitchen_in_progress", kitchen, clock=clock)
        except InvalidTransition as exc:
            return exc

    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(pool.map(attempt, range(n)))

    applied = [r for r in results if not isinstance(r, Exception) and r.applied]
    rejected = [r for r in results if isinstance(r, InvalidTransition)]
    assert len(applied) == 1
    assert len(rejected) == n - 1
    doc = store.get(f"orders/{order.id}")
    assert doc["status"] == "kitchen_in_progress"
    assert len(doc["statusHistory"]) == 2


def test_unknown_status_and_missing_order(store, clock, place_order, admin):
    order = place_order()
    with pytest.raises(InvalidPayload):
        request_transition(store, order.id, "teleported", admin, clock=clock)
    with pytest.raises(OrderNotFound):
        request_transition(store, "nope", "kitchen_in_progress", admin, clock=clock)


def test_delivery_chain_end_to_end(store, clock, place_order, admin):
    order = place_order(type="delivery", deliveryAddress="Zona 10")
    for target in ["kitchen_in_progress", "kitchen_done", "assigned_to_courier",
                   "on_the_way", "delivered", "closed"]:
        assert request_transition(store, order.id, target, admin, clock=clock).applied
    with pytest.raises(InvalidTransition):
        request_transition(store, order.id, "delivered", admin, clock=clock)


def test_backward_move_is_logged(store, clock, place_order, admin, caplog):
    order = place_order()
    request_transition(store, order.id, "kitchen_in_progress", admin, clock=clock)
    with caplog.at_level(logging.WARNING, logger="comanda.status"):
        result = request_transition(store, order.id, "placed", admin, clock=clock)
    assert result.applied and result.backward
    assert any("backward" in r.getMessage() for r in caplog.records)


# ---------- role policy ----------

def test_role_policy(store, clock, place_order, kitchen, waiter, courier):
    policy = RoleTransitionPolicy()
    order = place_order()
    with pytest.raises(NotAuthorized):
        request_transition(store, order.id, "kitchen_in_progress", waiter, policy=policy, clock=clock)
    assert store.get(f"orders/{order.id}")["status"] == "placed"

    for target in ["kitchen_in_progress", "kitchen_done", "ready_to_close"]:
        request_transition(store, order.id, target, kitchen, policy=policy, clock=clock)
    with pytest.raises(NotAuthorized):
        request_transition(store, order.id, "closed", courier, policy=policy, clock=clock)
    assert request_transition(store, order.id, "closed", waiter, policy=policy, clock=clock).applied


def test_policy_grants_are_per_channel(kitchen, courier, admin):
    policy = RoleTransitionPolicy()
    assert policy(kitchen, S.KITCHEN_DONE, S.ASSIGNED_TO_COURIER, Channel.DELIVERY)
    assert not policy(kitchen, S.ASSIGNED_TO_COURIER, S.ON_THE_WAY, Channel.DELIVERY)
    assert policy(courier, S.ASSIGNED_TO_COURIER, S.ON_THE_WAY, Channel.DELIVERY)
    assert not policy(courier, S.READY_TO_CLOSE, S.CLOSED, Channel.DINE_IN)
    assert policy(admin, S.READY_TO_CLOSE, S.CLOSED, Channel.DINE_IN)


# ---------- cancellation ----------

def test_creator_may_cancel_while_placed(store, clock, place_order, waiter):
    order = place_order()
    result = cancel_order(store, order.id, waiter, clock=clock)
    assert result.applied
    doc = store.get(f"orders/{order.id}")
    assert doc["status"] == "cancelled"
    assert doc["statusHistory"][-1]["kind"] == "cancelled"


def test_creator_cannot_cancel_once_cooking(store, clock, place_order, waiter, admin):
    order = place_order()
    request_transition(store, order.id, "kitchen_in_progress", admin, clock=clock)
    with pytest.raises(InvalidTransition):
        cancel_order(store, order.id, waiter, clock=clock)
    assert cancel_order(store, order.id, admin, clock=clock).applied


def test_strangers_cannot_cancel(store, clock, place_order):
    order = place_order()
    with pytest.raises(NotAuthorized):
        cancel_order(store, order.id, Actor.of("someone-else"), clock=clock)


def test_terminal_orders_stay_put(store, clock, place_order, admin):
    order = place_order()
    cancel_order(store, order.id, admin, clock=clock)
    with pytest.raises(InvalidTransition):
        cancel_order(store, order.id, admin, clock=clock)
    with pytest.raises(InvalidTransition):
        request_transition(store, order.id, "placed", admin, clock=clock)


def test_status_history_newest_first(store, clock, place_order, admin):
    order = place_order()
    request_transition(store, order.id, "kitchen_in_progress", admin, clock=clock)
    request_transition(store, order.id, "kitchen_done", admin, clock=clock)
    entries = status_history(store, order.id, limit=2)
    assert [e.to_status for e in entries] == ["kitchen_done", "kitchen_in_progress"]
    with pytest.raises(OrderNotFound):
        status_history(store, "missing")
