# comanda/routes/invoices.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..clock import Clock
from ..schemas.base import CamelModel
from ..services.invoices import issue_invoice
from ..store import DocumentStore
from .deps import get_clock, get_store

router = APIRouter(prefix="/invoices", tags=["invoices"])


class IssueBody(CamelModel):
    order_id: str


@router.post("/issue")
def issue_invoice_endpoint(
    body: IssueBody,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    issued = issue_invoice(store, body.order_id, clock=clock)
    return issued.to_dict()
