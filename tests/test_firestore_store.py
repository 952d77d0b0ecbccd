"""Firestore adapter against a mocked client (no credentials needed)."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from comanda.errors import Contention, OrderNotFound
from comanda.store import firestore_store
from comanda.store.firestore_store import FirestoreStore


def _snap(doc_id, data):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = data is not None
    snap.to_dict.return_value = data
    return snap


@pytest.fixture()
def client():
    return MagicMock()


def _run_inline(monkeypatch):
    """Replace the retrying decorator with a single direct call."""
    monkeypatch.setattr(firestore_store.firestore, "transactional", lambda fn: fn)


def test_get_missing_and_present(client):
    store = FirestoreStore(client=client)
    client.document.return_value.get.return_value = _snap("x", None)
    assert store.get("orders/x") is None
    client.document.return_value.get.return_value = _snap("x", {"status": "placed"})
    assert store.get("orders/x") == {"status": "placed"}
    client.document.assert_called_with("orders/x")


def test_where_chains_filters_and_adds_ids(client):
    query = client.collection.return_value
    query.where.return_value = query
    query.limit.return_value = query
    query.stream.return_value = [_snap("a", {"code": "A"})]

    store = FirestoreStore(client=client)
    rows = store.where("promotions", [("code", "==", "A")], limit=1)

    assert rows == [{"code": "A", "id": "a"}]
    query.where.assert_called_once_with("code", "==", "A")
    query.limit.assert_called_once_with(1)


def test_transaction_body_goes_through_the_handle(client, monkeypatch):
    _run_inline(monkeypatch)
    client.document.return_value.get.return_value = _snap("c", {"next": 4})
    store = FirestoreStore(client=client, max_attempts=7)

    def body(tx):
        value = tx.get("counters/c")["next"]
        tx.set("counters/c", {"next": value + 1}, merge=True)
        return value

    assert store.run_transaction(body) == 4
    client.transaction.assert_called_once_with(max_attempts=7)
    handle = client.transaction.return_value
    handle.set.assert_called_once_with(client.document.return_value, {"next": 5}, merge=True)


def test_engine_errors_propagate(client, monkeypatch):
    _run_inline(monkeypatch)
    client.document.return_value.get.return_value = _snap("o", None)
    store = FirestoreStore(client=client)

    def body(tx):
        if tx.get("orders/o") is None:
            raise OrderNotFound("o")

    with pytest.raises(OrderNotFound):
        store.run_transaction(body)


@pytest.mark.parametrize("error", [
    google_exceptions.Aborted("too much contention"),
    ValueError("Failed to commit transaction in 5 attempts."),
])
def test_exhausted_retries_become_contention(client, monkeypatch, error):
    def transactional(fn):
        def run(transaction):
            raise error
        return run

    monkeypatch.setattr(firestore_store.firestore, "transactional", transactional)
    store = FirestoreStore(client=client, max_attempts=5)
    with pytest.raises(Contention):
        store.run_transaction(lambda tx: None)


def test_other_value_errors_are_not_contention(client, monkeypatch):
    _run_inline(monkeypatch)
    store = FirestoreStore(client=client)

    def body(tx):
        raise ValueError("bad document")

    with pytest.raises(ValueError, match="bad document"):
        store.run_transaction(body)
