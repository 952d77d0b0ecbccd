# comanda/settings.py
from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
import os

from .schemas.invoices import InvoiceNumbering

def _parse_cors(v: Optional[str | List[str]]) -> List[str]:
    """
    Accept JSON array (e.g. '["http://localhost:3000"]') or
    comma-separated string ('http://localhost:3000,http://127.0.0.1:3000').
    """
    if v is None:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    if isinstance(v, list):
        return v
    s = v.strip()
    if not s:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    # try JSON first
    try:
        parsed = json.loads(s)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list) and all(isinstance(x, str) for x in parsed):
        return parsed
    # fallback: comma separated
    return [p.strip() for p in s.split(",") if p.strip()]

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",   # ignore unknown env keys instead of raising
    )

    # --- API ---
    api_host: str = Field(default="127.0.0.1", validation_alias=AliasChoices("API_HOST",))
    api_port: int = Field(default=8000,        validation_alias=AliasChoices("API_PORT",))
    cors_origins_raw: Optional[str | List[str]] = Field(
        default=None, validation_alias=AliasChoices("CORS_ORIGINS",)
    )
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL",))

    # --- Firebase ---
    firebase_project_id: str = Field(
        default="comanda",
        validation_alias=AliasChoices("FIREBASE_PROJECT_ID",)
    )
    google_application_credentials: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_APPLICATION_CREDENTIALS",)
    )

    # --- Store ---
    # "memory" keeps everything in-process (local dev, tests)
    store_backend: Literal["firestore", "memory"] = Field(
        default="firestore", validation_alias=AliasChoices("STORE_BACKEND",)
    )
    transaction_max_attempts: int = Field(
        default=5, ge=1, validation_alias=AliasChoices("TRANSACTION_MAX_ATTEMPTS",)
    )

    # --- Money ---
    currency: str = Field(default="GTQ", validation_alias=AliasChoices("CURRENCY",))
    # basis points: 1200 == 12%
    tax_rate_bps: int = Field(default=0, ge=0, validation_alias=AliasChoices("TAX_RATE_BPS",))
    service_fee_bps: int = Field(default=0, ge=0, validation_alias=AliasChoices("SERVICE_FEE_BPS",))

    # --- Invoice numbering (fallback when no taxProfiles/active doc) ---
    invoice_numbering_enabled: bool = Field(
        default=True, validation_alias=AliasChoices("INVOICE_NUMBERING_ENABLED",)
    )
    invoice_prefix: str = Field(default="", validation_alias=AliasChoices("INVOICE_PREFIX",))
    invoice_series: str = Field(default="", validation_alias=AliasChoices("INVOICE_SERIES",))
    invoice_suffix: str = Field(default="", validation_alias=AliasChoices("INVOICE_SUFFIX",))
    invoice_padding: int = Field(default=6, ge=0, validation_alias=AliasChoices("INVOICE_PADDING",))
    invoice_reset_policy: Literal["never", "yearly", "monthly", "daily"] = Field(
        default="never", validation_alias=AliasChoices("INVOICE_RESET_POLICY",)
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors(self.cors_origins_raw)

    @property
    def invoice_numbering(self) -> InvoiceNumbering:
        return InvoiceNumbering(
            enabled=self.invoice_numbering_enabled,
            prefix=self.invoice_prefix,
            series=self.invoice_series,
            suffix=self.invoice_suffix,
            padding=self.invoice_padding,
            reset_policy=self.invoice_reset_policy,
        )

# singleton
settings = Settings()

# Make sure GOOGLE_APPLICATION_CREDENTIALS is exported for firebase_admin
if settings.google_application_credentials:
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = settings.google_application_credentials
