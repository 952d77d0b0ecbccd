"""Store backend selection."""
from __future__ import annotations

from functools import lru_cache

from ..settings import settings
from .base import DocumentNotFound, DocumentStore, StoreTransaction
from .memory_store import MemoryStore


@lru_cache
def get_store() -> DocumentStore:
    """Return (and lazily create) the process-wide store configured by STORE_BACKEND."""
    if settings.store_backend == "memory":
        return MemoryStore(max_attempts=settings.transaction_max_attempts)

    from .firestore_store import FirestoreStore

    return FirestoreStore(max_attempts=settings.transaction_max_attempts)


__all__ = [
    "DocumentNotFound",
    "DocumentStore",
    "MemoryStore",
    "StoreTransaction",
    "get_store",
]
