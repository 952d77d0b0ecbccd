"""Invoice numbering."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from comanda.errors import InvoiceNumberingDisabled, OrderNotFound
from comanda.schemas.invoices import InvoiceNumbering
from comanda.services.invoices import (
    compose_invoice_number,
    counter_name,
    issue_invoice,
    load_invoice_numbering,
)
from comanda.settings import settings

WHEN = datetime(2025, 3, 4, 9, 30, tzinfo=timezone.utc)


def test_compose():
    cfg = InvoiceNumbering(prefix="F-", series="A", suffix="/25", padding=6)
    assert compose_invoice_number(cfg, 123) == "F-A000123/25"
    assert compose_invoice_number(InvoiceNumbering(padding=0), 7) == "7"
    assert compose_invoice_number(InvoiceNumbering(padding=2), 1234) == "1234"


@pytest.mark.parametrize("policy,expected", [
    ("never", "invoices"),
    ("yearly", "invoices-year-2025"),
    ("monthly", "invoices-month-2025-03"),
    ("daily", "invoices-day-2025-03-04"),
])
def test_counter_per_period(policy, expected):
    assert counter_name(InvoiceNumbering(reset_policy=policy), WHEN) == expected


def test_issue_is_idempotent(store, clock, place_order):
    cfg = InvoiceNumbering(series="B", padding=4)
    first = place_order()
    second = place_order()

    issued = issue_invoice(store, first.id, cfg, clock=clock)
    assert issued.invoice_number == "B0001"
    assert not issued.already_issued
    again = issue_invoice(store, first.id, cfg, clock=clock)
    assert again.already_issued
    assert again.invoice_number == "B0001"
    assert issue_invoice(store, second.id, cfg, clock=clock).invoice_number == "B0002"

    doc = store.get(f"orders/{first.id}")
    assert doc["invoiceNumber"] == "B0001"
    assert doc["invoiceSeries"] == "B"
    assert doc["invoiceIssuedAt"] == clock()


def test_period_reset_uses_a_fresh_counter(store, place_order):
    cfg = InvoiceNumbering(reset_policy="daily", padding=1)
    a, b = place_order(), place_order()
    day1 = datetime(2025, 3, 4, 23, 59, tzinfo=timezone.utc)
    day2 = datetime(2025, 3, 5, 0, 1, tzinfo=timezone.utc)
    assert issue_invoice(store, a.id, cfg, clock=lambda: day1).invoice_number == "1"
    assert issue_invoice(store, b.id, cfg, clock=lambda: day2).invoice_number == "1"


def test_disabled_and_missing(store, clock, place_order):
    order = place_order()
    with pytest.raises(InvoiceNumberingDisabled):
        issue_invoice(store, order.id, InvoiceNumbering(enabled=False), clock=clock)
    with pytest.raises(OrderNotFound):
        issue_invoice(store, "missing", InvoiceNumbering(), clock=clock)
    assert store.get("counters/invoices") is None


def test_numbering_from_tax_profile(store):
    assert load_invoice_numbering(store) == settings.invoice_numbering
    store.set("taxProfiles/active", {"b2bConfig": {"invoiceNumbering": {
        "enabled": True, "prefix": "FAC", "padding": 3, "resetPolicy": "yearly",
    }}})
    cfg = load_invoice_numbering(store)
    assert cfg.prefix == "FAC"
    assert cfg.reset_policy == "yearly"


def test_concurrent_issuance_is_gap_free(store, clock, place_order):
    store.max_attempts = 200
    orders = [place_order() for _ in range(8)]
    cfg = InvoiceNumbering(padding=0)

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(lambda o: issue_invoice(store, o.id, cfg, clock=clock).invoice_number, orders))

    assert sorted(int(n) for n in numbers) == list(range(1, 9))
