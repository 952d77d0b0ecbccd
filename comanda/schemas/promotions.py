from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from .base import CamelModel

_WS = re.compile(r"\s+")
_WINDOW_FIELDS = (("startAt", "start_at"), ("endAt", "end_at"))


def normalize_code(raw: Optional[str]) -> str:
    """' summer 10 ' -> 'SUMMER10'"""
    return _WS.sub("", (raw or "").strip().upper())


class PromotionScope(CamelModel):
    categories: List[str] = Field(default_factory=list)
    subcategories: List[str] = Field(default_factory=list)
    menu_items: List[str] = Field(default_factory=list)

    @property
    def is_global(self) -> bool:
        return not (self.categories or self.subcategories or self.menu_items)


class PromotionConstraints(CamelModel):
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    min_target_subtotal: Optional[int] = Field(default=None, ge=0)
    global_limit: Optional[int] = Field(default=None, ge=0)
    per_caller_limit: Optional[int] = Field(default=None, ge=0, alias="perUserLimit")
    allowed_order_types: List[str] = Field(default_factory=list)

    @field_validator("start_at", "end_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Promotion(CamelModel):
    id: str = ""
    code: str
    name: str = ""
    type: Literal["percent", "fixed"] = "percent"
    # percent: 0 < value <= 100, fractions allowed (12.5); fixed: whole minor units
    value: Decimal
    active: bool = True
    scope: PromotionScope = Field(default_factory=PromotionScope)
    constraints: PromotionConstraints = Field(default_factory=PromotionConstraints)
    times_redeemed: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _lift_window(cls, data: Any) -> Any:
        # older documents keep startAt/endAt next to code instead of under constraints
        if not isinstance(data, dict):
            return data
        constraints = data.get("constraints") or {}
        if not isinstance(constraints, dict):
            return data
        lifted = dict(constraints)
        for alias, name in _WINDOW_FIELDS:
            top = data.get(alias, data.get(name))
            if top is not None and lifted.get(alias) is None and lifted.get(name) is None:
                lifted[alias] = top
        return {**data, "constraints": lifted}

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return normalize_code(v)

    @model_validator(mode="after")
    def _check_value(self) -> "Promotion":
        if not self.value.is_finite():
            raise ValueError(f"value must be a finite number, got {self.value}")
        if self.type == "percent" and not (0 < self.value <= 100):
            raise ValueError(f"percent value must be in (0, 100], got {self.value}")
        if self.type == "fixed":
            if self.value < 0:
                raise ValueError(f"fixed value must be >= 0, got {self.value}")
            if self.value != self.value.to_integral_value():
                raise ValueError(f"fixed value is in minor units and must be whole, got {self.value}")
        return self
