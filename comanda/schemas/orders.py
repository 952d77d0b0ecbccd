# comanda/schemas/orders.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, Field, model_validator

from .base import CamelModel


class OptionDelta(CamelModel):
    """A selected option (e.g. "Large", "Extra cheese") and its per-unit price delta."""
    name: str = ""
    group: Optional[str] = None
    delta: int = 0


class Addon(CamelModel):
    name: str = ""
    amount: int = 0


class OrderLine(CamelModel):
    line_id: str
    menu_item_id: str
    name: str = ""
    quantity: int = Field(default=1, ge=1)
    base_price: int = 0
    options: List[OptionDelta] = Field(default_factory=list)
    addons: List[Addon] = Field(default_factory=list)
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    # explicit total sent by a legacy client; trusted as-is by the pricer
    total_override: Optional[int] = None

    # derived
    subtotal: int = 0
    discount: int = 0

    added_at: Optional[datetime] = None
    added_batch_id: Optional[str] = None


class Amounts(CamelModel):
    subtotal: int = 0
    discount: int = 0
    tax: int = 0
    service_fee: int = 0
    tip: int = 0
    total: int = 0

    @classmethod
    def build(cls, *, subtotal: int, discount: int = 0, tax: int = 0,
              service_fee: int = 0, tip: int = 0) -> "Amounts":
        return cls(
            subtotal=subtotal, discount=discount, tax=tax, service_fee=service_fee,
            tip=tip, total=subtotal - discount + tax + service_fee + tip,
        )

    @model_validator(mode="after")
    def _total_is_additive(self) -> "Amounts":
        expected = self.subtotal - self.discount + self.tax + self.service_fee + self.tip
        if self.total != expected:
            raise ValueError(f"amounts.total {self.total} != {expected}")
        return self


class StatusHistoryEntry(CamelModel):
    at: datetime
    actor_id: Optional[str] = None
    from_status: Optional[str] = None
    to_status: str
    idempotency_key: Optional[str] = None
    kind: str = "transition"    # created | transition | cancelled | reopened


class AppliedPromotion(CamelModel):
    promotion_id: str
    code: str
    discount_total: int = 0


class Order(CamelModel):
    id: str
    type: str = "dine_in"           # display label: dine_in | delivery | pickup
    channel: str = "dine_in"        # operative channel: dine_in | delivery
    status: str
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    lines: List[OrderLine] = Field(default_factory=list)
    amounts: Amounts = Field(default_factory=Amounts)
    tax_rate_bps: int = 0
    service_fee_bps: int = 0
    currency: str = "GTQ"

    table_number: Optional[str] = None
    delivery_address: Optional[str] = None
    order_info: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None

    promotions: List[AppliedPromotion] = Field(default_factory=list)

    invoice_number: Optional[str] = None
    invoice_series: Optional[str] = None
    invoice_issued_at: Optional[datetime] = None

    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, order_id: str, doc: Dict[str, Any]) -> "Order":
        return cls.model_validate({**doc, "id": order_id})

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})


class Checkout(CamelModel):
    """What a checkout request hands to ``create_order``; items stay raw until normalized."""
    type: str
    items: List[Dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "lines", "orderLines", "cart"),
    )
    tip: int = Field(default=0, ge=0, validation_alias=AliasChoices("tip", "tipCents"))
    promotion_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("promotionCode", "couponCode", "promotion_code"),
    )
    table_number: Optional[Union[str, int]] = None
    delivery_address: Optional[str] = None
    order_info: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    currency: Optional[str] = None
