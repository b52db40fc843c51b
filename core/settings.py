"""
Payment-related settings using pydantic-settings v2 with nested env keys (PAYMENT__...).

Base URLs are resolved once from each provider's `sandbox` flag; adapters receive
their provider block in the constructor.
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


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs allowed to post callbacks
    # honour X-Forwarded-For/X-Real-IP only behind a proxy that overwrites them
    trust_forwarded_for: bool = False


class ReconciliationSettings(BaseModel):
    stale_after_minutes: int = 15
    batch_size: int = 100
    interval_seconds: int = 300


class ProviderSettings(BaseModel):
    sandbox: bool = True
    sandbox_url: str = ""
    production_url: str = ""

    @property
    def base_url(self) -> str:
        return (self.sandbox_url if self.sandbox else self.production_url).rstrip("/")


class PaymeSettings(ProviderSettings):
    merchant_id: Optional[str] = None
    username: Optional[str] = None  # Basic-Auth login (usually "Paycom")
    password: Optional[str] = None  # merchant key, also the legacy signature secret
    sandbox_url: str = "https://sandbox-api.payme.uz"
    production_url: str = "https://api.payme.uz"


class ClickSettings(ProviderSettings):
    service_id: Optional[str] = None
    merchant_id: Optional[str] = None
    merchant_user_id: Optional[str] = None
    secret_key: Optional[str] = None
    sandbox_url: str = "https://sandbox.click.uz"
    production_url: str = "https://api.click.uz"


class UzumSettings(ProviderSettings):
    merchant_id: Optional[str] = None
    service_id: Optional[str] = None
    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    username: Optional[str] = None  # webhook Basic-Auth
    password: Optional[str] = None
    sandbox_url: str = "https://sandbox-api.uzumbank.uz"
    production_url: str = "https://api.uzumbank.uz"


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    payme: PaymeSettings = Field(default_factory=PaymeSettings)
    click: ClickSettings = Field(default_factory=ClickSettings)
    uzum: UzumSettings = Field(default_factory=UzumSettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
