# comanda/services/invoices.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..clock import Clock, utcnow
from ..errors import InvoiceNumberingDisabled, OrderNotFound
from ..schemas.invoices import InvoiceNumbering
from ..settings import settings
from ..store import DocumentStore, StoreTransaction
from .counters import reserve_next

logger = logging.getLogger("comanda.invoices")

ORDERS = "orders"
TAX_PROFILE = "taxProfiles/active"
COUNTER_BASE = "invoices"


def compose_invoice_number(cfg: InvoiceNumbering, n: int) -> str:
    """
    >>> compose_invoice_number(InvoiceNumbering(prefix="F-", series="A", padding=6), 123)
    'F-A000123'
    """
    return f"{cfg.prefix}{cfg.series}{str(n).zfill(max(0, cfg.padding))}{cfg.suffix}"


def counter_name(cfg: InvoiceNumbering, now: datetime) -> str:
    """One counter per numbering period, so a reset is just a fresh counter."""
    if cfg.reset_policy == "daily":
        return f"{COUNTER_BASE}-day-{now:%Y-%m-%d}"
    if cfg.reset_policy == "monthly":
        return f"{COUNTER_BASE}-month-{now:%Y-%m}"
    if cfg.reset_policy == "yearly":
        return f"{COUNTER_BASE}-year-{now:%Y}"
    return COUNTER_BASE


def load_invoice_numbering(store: DocumentStore) -> InvoiceNumbering:
    """Numbering from the active tax profile, or from settings when there is none."""
    profile = store.get(TAX_PROFILE) or {}
    cfg = (profile.get("b2bConfig") or {}).get("invoiceNumbering")
    if cfg:
        return InvoiceNumbering.model_validate(cfg)
    return settings.invoice_numbering


@dataclass(frozen=True)
class IssuedInvoice:
    order_id: str
    invoice_number: str
    series: Optional[str]
    issued_at: Optional[datetime]
    already_issued: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "invoiceNumber": self.invoice_number,
            "series": self.series,
            "issuedAt": self.issued_at,
            "alreadyIssued": self.already_issued,
        }


def issue_invoice(store: DocumentStore, order_id: str,
                  numbering: Optional[InvoiceNumbering] = None,
                  clock: Clock = utcnow) -> IssuedInvoice:
    """
    Give an order its invoice number. Calling it again for the same order
    returns the number it already has and reserves nothing.
    """
    cfg = numbering or load_invoice_numbering(store)
    if not cfg.enabled:
        raise InvoiceNumberingDisabled()
    now = clock()
    name = counter_name(cfg, now)
    path = f"{ORDERS}/{order_id}"

    def body(tx: StoreTransaction) -> IssuedInvoice:
        order = tx.get(path)
        if order is None:
            raise OrderNotFound(order_id)
        if order.get("invoiceNumber"):
            return IssuedInvoice(
                order_id=order_id,
                invoice_number=order["invoiceNumber"],
                series=order.get("invoiceSeries"),
                issued_at=order.get("invoiceIssuedAt"),
                already_issued=True,
            )

        number = compose_invoice_number(cfg, reserve_next(tx, name))
        series = cfg.series or None
        tx.update(path, {
            "invoiceNumber": number,
            "invoiceSeries": series,
            "invoiceIssuedAt": now,
            "updatedAt": now,
        })
        return IssuedInvoice(order_id=order_id, invoice_number=number, series=series, issued_at=now)

    issued = store.run_transaction(body)
    if not issued.already_issued:
        logger.info("invoice %s issued for order %s (counter %s)", issued.invoice_number, order_id, name)
    return issued
