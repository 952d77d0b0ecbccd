from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import CamelModel


class InvoiceNumbering(CamelModel):
    enabled: bool = True
    prefix: str = ""
    series: str = ""
    suffix: str = ""
    padding: int = Field(default=6, ge=0)      # digits, 6 -> 000123
    reset_policy: Literal["never", "yearly", "monthly", "daily"] = "never"
