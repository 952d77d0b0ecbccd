# comanda/services/counters.py
"""Gap-free sequence counters stored at ``counters/{name}``."""
from __future__ import annotations

from ..store import DocumentStore, StoreTransaction

COLLECTION = "counters"


def counter_path(name: str) -> str:
    return f"{COLLECTION}/{name}"


def reserve_next(tx: StoreTransaction, name: str) -> int:
    """
    Take the next value of counter ``name`` inside an open transaction.

    Reads before it writes, so callers that need other documents must read
    them first.
    """
    path = counter_path(name)
    doc = tx.get(path) or {}
    value = int(doc.get("next", 1))
    tx.set(path, {"next": value + 1}, merge=True)
    return value


def next_value(store: DocumentStore, name: str) -> int:
    return store.run_transaction(lambda tx: reserve_next(tx, name))
