# comanda/store/memory_store.py
from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import Contention
from .base import Document, DocumentNotFound, DocumentStore, Filter, StoreTransaction, T

logger = logging.getLogger("comanda.store")


def _deep_merge(base: Document, patch: Document) -> Document:
    out = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _matches(doc: Document, filters: Sequence[Filter]) -> bool:
    for field, op, value in filters:
        if op == "==":
            if doc.get(field) != value:
                return False
        elif op == "in":
            if doc.get(field) not in value:
                return False
        else:
            raise ValueError(f"unsupported filter op {op!r}")
    return True


class MemoryTransaction(StoreTransaction):
    def __init__(self, store: "MemoryStore"):
        self._store = store
        self.reads: Dict[str, int] = {}
        self.writes: List[Tuple[str, str, Document, bool]] = []

    def get(self, path: str) -> Optional[Document]:
        if self.writes:
            raise RuntimeError("transaction reads must happen before writes")
        version, data = self._store._snapshot(path)
        self.reads.setdefault(path, version)
        return data

    def set(self, path: str, data: Document, merge: bool = False) -> None:
        self.writes.append(("set", path, copy.deepcopy(data), merge))

    def update(self, path: str, data: Document) -> None:
        self.writes.append(("update", path, copy.deepcopy(data), False))


class MemoryStore(DocumentStore):
    """
    In-process optimistic store.

    Every document carries a version. A transaction remembers the version of
    each document it read; at commit, under the store lock, any changed
    version means a conflict and the whole body is run again.
    """

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._docs: Dict[str, Document] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.RLock()

    # ---------- plain reads/writes ----------
    def get(self, path: str) -> Optional[Document]:
        return self._snapshot(path)[1]

    def set(self, path: str, data: Document, merge: bool = False) -> None:
        with self._lock:
            self._apply([("set", path, copy.deepcopy(data), merge)])

    def update(self, path: str, data: Document) -> None:
        with self._lock:
            self._apply([("update", path, copy.deepcopy(data), False)])

    def where(self, collection: str, filters: Sequence[Filter] = (),
              limit: Optional[int] = None) -> List[Document]:
        prefix = collection.rstrip("/") + "/"
        out: List[Document] = []
        with self._lock:
            for path in sorted(self._docs):
                if not path.startswith(prefix) or "/" in path[len(prefix):]:
                    continue
                doc = self._docs[path]
                if _matches(doc, filters):
                    row = copy.deepcopy(doc)
                    row["id"] = path[len(prefix):]
                    out.append(row)
                    if limit is not None and len(out) >= limit:
                        break
        return out

    # ---------- transactions ----------
    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            tx = MemoryTransaction(self)
            result = fn(tx)
            with self._lock:
                if self._unchanged(tx.reads):
                    self._apply(tx.writes)
                    return result
            logger.debug("transaction conflict (attempt %d/%d)", attempt, self.max_attempts)
        logger.warning("transaction gave up after %d attempts", self.max_attempts)
        raise Contention(self.max_attempts)

    # ---------- internals ----------
    def _snapshot(self, path: str) -> Tuple[int, Optional[Document]]:
        with self._lock:
            doc = self._docs.get(path)
            return self._versions.get(path, 0), copy.deepcopy(doc) if doc is not None else None

    def _unchanged(self, reads: Dict[str, int]) -> bool:
        return all(self._versions.get(path, 0) == version for path, version in reads.items())

    def _apply(self, writes: List[Tuple[str, str, Document, bool]]) -> None:
        for kind, path, _, _ in writes:
            if kind == "update" and path not in self._docs and not any(
                k == "set" and p == path for k, p, _, _ in writes
            ):
                raise DocumentNotFound(path)
        for kind, path, data, merge in writes:
            current = self._docs.get(path)
            if kind == "update":
                self._docs[path] = {**current, **data}
            elif merge and current is not None:
                self._docs[path] = _deep_merge(current, data)
            else:
                self._docs[path] = data
            self._versions[path] = self._versions.get(path, 0) + 1

    def dump(self) -> Dict[str, Any]:
        """Copy of every document, keyed by path. Handy in tests and the seed script."""
        with self._lock:
            return copy.deepcopy(self._docs)
