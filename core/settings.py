"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Mercado Pago credentials are optional: without an access token the provider
client degrades to "unknown" results instead of failing startup.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class MercadoPagoSettings(BaseModel):
    access_token: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_base: str = "https://api.mercadopago.com"
    notification_url: Optional[str] = None
    currency: str = "MXN"


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    mercadopago: MercadoPagoSettings = Field(default_factory=MercadoPagoSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
