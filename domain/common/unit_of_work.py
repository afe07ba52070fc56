"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import PaymentOrderRepository, WebhookEventRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer."""

    payment_orders: PaymentOrderRepository
    webhook_events: WebhookEventRepository

    def __init__(self) -> None:
        self._committed = False
        self.payment_orders = None  # type: ignore[assignment]
        self.webhook_events = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # Auto-commit unless committed explicitly
            if not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
