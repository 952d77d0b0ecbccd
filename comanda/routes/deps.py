# comanda/routes/deps.py
"""FastAPI dependencies shared by the routers. Tests override these."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

from ..clock import Clock, utcnow
from ..identity import Actor
from ..services.catalog import StoreCatalog
from ..store import DocumentStore, get_store


def get_clock() -> Clock:
    return utcnow


def get_catalog(store: DocumentStore = Depends(get_store)) -> StoreCatalog:
    # one per request so menu edits are picked up
    return StoreCatalog(store)


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_roles: Optional[str] = Header(None),
) -> Actor:
    """Caller identity as forwarded by the auth proxy."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="missing X-Actor-Id header")
    return Actor.of(x_actor_id.strip(), (x_actor_roles or "").split(","))


def get_optional_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_roles: Optional[str] = Header(None),
) -> Optional[Actor]:
    if not x_actor_id or not x_actor_id.strip():
        return None
    return Actor.of(x_actor_id.strip(), (x_actor_roles or "").split(","))


__all__ = ["get_actor", "get_catalog", "get_clock", "get_optional_actor", "get_store"]
