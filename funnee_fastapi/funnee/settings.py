# funnee/settings.py
from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
import os

_DEFAULT_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def _parse_cors(v: Optional[str | List[str]]) -> List[str]:
    """
    Accept JSON array (e.g. '["http://localhost:5173"]') or
    comma-separated string ('http://localhost:5173,http://127.0.0.1:5173').
    """
    if v is None:
        return list(_DEFAULT_ORIGINS)
    if isinstance(v, list):
        return v
    s = v.strip()
    if not s:
        return list(_DEFAULT_ORIGINS)
    # try JSON first
    try:
        parsed = json.loads(s)
        if isinstance(parsed, list) and all(isinstance(x, str) for x in parsed):
            return parsed
    except json.JSONDecodeError:
        pass
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

    # --- Postgres (catalog + orders) ---
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL",)
    )

    # --- Firebase (identity + cart snapshots) ---
    firebase_project_id: str = Field(
        default="funnee-rentals",
        validation_alias=AliasChoices("FIREBASE_PROJECT_ID",)
    )
    google_application_credentials: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_APPLICATION_CREDENTIALS",)
    )

    # --- Stripe ---
    stripe_secret_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STRIPE_SECRET_KEY",)
    )
    stripe_webhook_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STRIPE_WEBHOOK_SECRET",)
    )
    currency: str = Field(default="usd", validation_alias=AliasChoices("CURRENCY",))
    stripe_payment_method: str = Field(
        default="card", validation_alias=AliasChoices("STRIPE_PAYMENT_METHOD",)
    )

    # --- Checkout ---
    checkout_return_url: str = Field(
        default="http://localhost:5173/checkout-success",
        validation_alias=AliasChoices("CHECKOUT_RETURN_URL",)
    )
    # accept either ALLOW_GUEST_CHECKOUT or GUEST_CHECKOUT
    allow_guest_checkout: bool = Field(
        default=False,
        validation_alias=AliasChoices("ALLOW_GUEST_CHECKOUT", "GUEST_CHECKOUT")
    )

    # --- Backends ---
    cart_backend: Literal["memory", "firestore"] = Field(
        default="memory", validation_alias=AliasChoices("CART_BACKEND",)
    )
    order_backend: Literal["postgres", "memory"] = Field(
        default="postgres", validation_alias=AliasChoices("ORDER_BACKEND",)
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors(self.cors_origins_raw)

# singleton
settings = Settings()

# Make sure GOOGLE_APPLICATION_CREDENTIALS is exported for firebase_admin
if settings.google_application_credentials:
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = settings.google_application_credentials
