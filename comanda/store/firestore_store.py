# comanda/store/firestore_store.py
"""Firestore-backed DocumentStore using the firebase_admin client."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Callable, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

from ..errors import Contention
from ..settings import settings
from .base import Document, DocumentStore, Filter, StoreTransaction, T

logger = logging.getLogger("comanda.store")


@lru_cache
def firestore_client() -> firestore.Client:
    """
    Client for FIREBASE_PROJECT_ID, initializing the default Firebase app once.
    Uses the service-account file when GOOGLE_APPLICATION_CREDENTIALS points at
    one, application default credentials otherwise.
    """
    if not firebase_admin._apps:
        sa_path = settings.google_application_credentials
        cred = credentials.Certificate(sa_path) if sa_path and os.path.isfile(sa_path) else None
        try:
            firebase_admin.initialize_app(cred, {"projectId": settings.firebase_project_id})
        except ValueError:
            # another thread got there first
            pass
    return firestore.client()

# google-cloud-firestore raises ValueError with this prefix once max_attempts is spent
_EXHAUSTED_PREFIX = "Failed to commit transaction"


class FirestoreTransaction(StoreTransaction):
    def __init__(self, client: firestore.Client, transaction: firestore.Transaction):
        self._client = client
        self._tx = transaction

    def get(self, path: str) -> Optional[Document]:
        snap = self._client.document(path).get(transaction=self._tx)
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def set(self, path: str, data: Document, merge: bool = False) -> None:
        self._tx.set(self._client.document(path), data, merge=merge)

    def update(self, path: str, data: Document) -> None:
        self._tx.update(self._client.document(path), data)


class FirestoreStore(DocumentStore):
    def __init__(self, client: Optional[firestore.Client] = None, max_attempts: int = 5):
        self._client = client or firestore_client()
        self.max_attempts = max_attempts

    def get(self, path: str) -> Optional[Document]:
        snap = self._client.document(path).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def set(self, path: str, data: Document, merge: bool = False) -> None:
        self._client.document(path).set(data, merge=merge)

    def update(self, path: str, data: Document) -> None:
        self._client.document(path).update(data)

    def where(self, collection: str, filters: Sequence[Filter] = (),
              limit: Optional[int] = None) -> List[Document]:
        q = self._client.collection(collection)
        for field, op, value in filters:
            q = q.where(field, op, value)
        if limit is not None:
            q = q.limit(limit)
        out: List[Document] = []
        for snap in q.stream():
            data = snap.to_dict() or {}
            data["id"] = snap.id
            out.append(data)
        return out

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        client = self._client

        @firestore.transactional
        def _body(transaction):
            return fn(FirestoreTransaction(client, transaction))

        try:
            return _body(client.transaction(max_attempts=self.max_attempts))
        except google_exceptions.Aborted as exc:
            logger.warning("firestore transaction aborted after %d attempts", self.max_attempts)
            raise Contention(self.max_attempts) from exc
        except ValueError as exc:
            if str(exc).startswith(_EXHAUSTED_PREFIX):
                logger.warning("firestore transaction gave up: %s", exc)
                raise Contention(self.max_attempts) from exc
            raise
