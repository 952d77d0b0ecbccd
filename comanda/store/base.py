"""Transactional document store the engine is written against."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")
Document = Dict[str, Any]
# (field, op, value); op is "==" or "in"
Filter = Tuple[str, str, Any]


class DocumentNotFound(LookupError):
    pass


class StoreTransaction(ABC):
    """
    Handle passed to a transaction body.

    All reads must happen before the first write. Writes are buffered and
    applied atomically on commit, or not at all.
    """

    @abstractmethod
    def get(self, path: str) -> Optional[Document]:
        ...

    @abstractmethod
    def set(self, path: str, data: Document, merge: bool = False) -> None:
        ...

    @abstractmethod
    def update(self, path: str, data: Document) -> None:
        """Top-level field update; the document must exist at commit time."""


class DocumentStore(ABC):
    @abstractmethod
    def get(self, path: str) -> Optional[Document]:
        ...

    @abstractmethod
    def set(self, path: str, data: Document, merge: bool = False) -> None:
        ...

    @abstractmethod
    def update(self, path: str, data: Document) -> None:
        ...

    @abstractmethod
    def where(self, collection: str, filters: Sequence[Filter] = (),
              limit: Optional[int] = None) -> List[Document]:
        """Documents of ``collection`` matching every filter, each with its ``id`` added."""

    @abstractmethod
    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        """
        Run ``fn`` inside an optimistic transaction.

        ``fn`` may be invoked several times when commits conflict, so it must
        only touch the store through the handle it receives. Exceptions raised
        by ``fn`` abort the attempt without writes and propagate unchanged.
        Raises ``Contention`` once the retry budget is spent.
        """
