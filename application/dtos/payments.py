"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

from domain.payment.entity import PaymentOrder, PaymentStatus, WebhookOutcome


class StartCheckout(BaseModel):
    """Checkout request as sent by the booking UI (amount in rupees)."""
    amount: condecimal(gt=0, max_digits=12, decimal_places=2)  # type: ignore[valid-type]
    redirect_url: str
    merchant_order_id: Optional[str] = Field(default=None, max_length=63)
    metadata: Optional[dict[str, Any]] = None

    @field_validator("merchant_order_id")
    @classmethod
    def _strip_order_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("merchant_order_id must not be blank")
        return v


class CheckoutSession(BaseModel):
    merchant_order_id: str
    redirect_url: str
    amount: int  # minor units
    gateway_order_id: Optional[str] = None
    state: Optional[str] = None


class GatewayStatus(BaseModel):
    """Gateway status normalized to the canonical vocabulary.

    `retryable` marks ERROR results caused by transport or authentication
    trouble on our side of the wire, as opposed to what the gateway said.
    """
    merchant_order_id: str
    status: PaymentStatus
    code: Optional[str] = None
    state: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False
    source: str = "order"
    raw: Optional[dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class WebhookNotification(BaseModel):
    """Decoded webhook payload."""
    merchant_order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    status: PaymentStatus
    code: Optional[str] = None
    state: Optional[str] = None
    amount: Optional[int] = None  # minor units
    raw: dict[str, Any] = Field(default_factory=dict)


class WebhookResult(BaseModel):
    outcome: WebhookOutcome
    merchant_order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    status: Optional[PaymentStatus] = None


class PaymentOrderView(BaseModel):
    merchant_order_id: str
    amount: int
    amount_major: Decimal
    currency: str
    status: PaymentStatus
    gateway_transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, order: PaymentOrder) -> "PaymentOrderView":
        return cls(
            merchant_order_id=order.merchant_order_id,
            amount=order.amount,
            amount_major=order.amount_major,
            currency=order.currency,
            status=order.status,
            gateway_transaction_id=order.gateway_transaction_id,
            gateway_order_id=order.gateway_order_id,
            failure_reason=order.failure_reason,
            created_at=order.created_at,
            last_updated_at=order.last_updated_at,
        )
