"""
Payment gateway settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials are loaded and
validated in one place. Values are read once; components receive them by
reference at construction.
"""
from __future__ import annotations

from enum import Enum
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class GatewayEnvironment(str, Enum):
    SANDBOX = "SANDBOX"
    PRODUCTION = "PRODUCTION"

    @property
    def base_url(self) -> str:
        if self is GatewayEnvironment.PRODUCTION:
            return "https://api.phonepe.com/apis/hermes"
        return "https://api-preprod.phonepe.com/apis/pg-sandbox"


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = Field(default=15.0, le=15.0)


class PaymentRetry(BaseModel):
    attempts: int = 3
    base_backoff: float = 0.5
    max_backoff: float = 4.0


class ReconciliationSettings(BaseModel):
    # Pending orders without a webhook for this long get polled
    window_seconds: int = 300
    batch_size: int = 100
    interval_seconds: int = 120


class PhonePeSettings(BaseModel):
    merchant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    client_version: str = "1"
    env: GatewayEnvironment = GatewayEnvironment.SANDBOX
    base_url: Optional[str] = None  # overrides the environment default
    webhook_secret: Optional[str] = None
    salt_index: str = "1"
    salt_key: Optional[str] = None  # legacy checksum status endpoint only
    # Older deployments signed webhooks with the OAuth client secret. Off by
    # default: an auth credential should not double as a signing key.
    allow_client_secret_as_webhook_secret: bool = False
    status_strategy: Literal["order", "checksum"] = "order"
    status_fallback: Optional[Literal["order", "checksum"]] = None
    token_safety_margin_seconds: int = 60

    @field_validator("env", mode="before")
    @classmethod
    def _upper_env(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or self.env.base_url).rstrip("/")


class PaymentSettings(BaseSettings):
    phonepe: PhonePeSettings = Field(default_factory=PhonePeSettings)
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
