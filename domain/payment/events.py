"""
Payment domain events.

Dataclass events record payment lifecycle facts for downstream handling
(booking confirmation, wallet credit, notifications). Domain remains free of
infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid

from .entity import PaymentOrder, PaymentStatus


@dataclass
class PaymentEvent:
    merchant_order_id: str
    amount: int
    transaction_id: Optional[str] = None
    source: str = "webhook"  # webhook | poll | checkout
    metadata: dict = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentSucceeded(PaymentEvent):
    pass


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentErrored(PaymentEvent):
    reason: Optional[str] = None


def event_for(order: PaymentOrder, *, source: str) -> PaymentEvent:
    """Build the event describing the terminal status `order` just reached."""
    common = dict(
        merchant_order_id=order.merchant_order_id,
        amount=order.amount,
        transaction_id=order.gateway_transaction_id,
        source=source,
        metadata=dict(order.metadata or {}),
    )
    if order.status is PaymentStatus.SUCCESS:
        return PaymentSucceeded(**common)
    if order.status is PaymentStatus.FAILED:
        return PaymentFailed(reason=order.failure_reason, **common)
    if order.status is PaymentStatus.ERROR:
        return PaymentErrored(reason=order.failure_reason, **common)
    raise ValueError(f"No event for non-terminal status {order.status}")
