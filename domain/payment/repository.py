"""
Payment repository interfaces - abstract data access for payment orders and webhook events.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import PaymentOrder, PaymentStatus, WebhookEvent, WebhookOutcome


class PaymentOrderRepository(ABC):
    """Payment order repository. Status changes only go through `transition`."""

    @abstractmethod
    async def create(self, order: PaymentOrder) -> PaymentOrder:
        """Persist a new order; raises StateConflictError when the id already exists."""

    @abstractmethod
    async def get_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentOrder]:
        pass

    @abstractmethod
    async def transition(
        self,
        merchant_order_id: str,
        target: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Optional[PaymentOrder]:
        """Atomically move a PENDING order to `target`.

        Returns the updated order, or None when the order is missing or no
        longer PENDING.
        """

    @abstractmethod
    async def record_checkout(
        self,
        merchant_order_id: str,
        *,
        gateway_order_id: Optional[str],
        redirect_url: Optional[str],
    ) -> None:
        """Store what the gateway returned at checkout. Never touches status."""

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PaymentOrder]:
        """PENDING orders whose last update happened before `older_than`, oldest first."""


class WebhookEventRepository(ABC):
    """Webhook delivery log plus the at-most-once claim on dedupe keys."""

    @abstractmethod
    async def add(self, event: WebhookEvent) -> WebhookEvent:
        """Record a delivery (duplicates included)."""

    @abstractmethod
    async def claim(self, dedupe_key: str, at: datetime) -> bool:
        """Atomically mark `dedupe_key` processed. False when it already was."""

    @abstractmethod
    async def mark_outcome(self, event: WebhookEvent, outcome: WebhookOutcome, at: datetime) -> None:
        pass
