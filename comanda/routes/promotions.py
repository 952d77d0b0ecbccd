# comanda/routes/promotions.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, Field

from ..clock import Clock
from ..identity import Actor
from ..schemas.base import CamelModel
from ..services.ledger import consume
from ..store import DocumentStore
from .deps import get_clock, get_optional_actor, get_store

router = APIRouter(prefix="/promotions", tags=["promotions"])


class ConsumeBody(CamelModel):
    promotion_id: str = Field(validation_alias=AliasChoices("promotionId", "promoId", "promotion_id"))
    code: str
    order_id: str
    # falls back to the calling actor
    caller_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("callerId", "userUid", "caller_id"),
    )


@router.post("/consume")
def consume_endpoint(
    body: ConsumeBody,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    actor: Optional[Actor] = Depends(get_optional_actor),
):
    """Record that an order used a promotion. Safe to retry."""
    caller_id = body.caller_id or (actor.id if actor else None)
    outcome = consume(store, body.promotion_id, body.code, body.order_id, caller_id=caller_id, clock=clock)
    return outcome.to_dict()
