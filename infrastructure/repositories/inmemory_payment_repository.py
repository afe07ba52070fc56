"""In-memory payment repositories.

Single-process only. Useful for local dev and tests. The store lock is held
by InMemoryUnitOfWork for the whole unit, which makes claim-then-transition
atomic the same way the SQL transaction does.
"""
from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from domain.payment.entity import PaymentOrder, PaymentStatus, WebhookEvent, WebhookOutcome, utcnow
from domain.payment.exceptions import StateConflictError
from domain.payment.repository import PaymentOrderRepository, WebhookEventRepository


@dataclass
class InMemoryPaymentStore:
    orders: Dict[str, PaymentOrder] = field(default_factory=dict)
    events: List[WebhookEvent] = field(default_factory=list)
    claims: Dict[str, datetime] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.orders, self.events, self.claims))

    def restore(self, snapshot: tuple) -> None:
        self.orders, self.events, self.claims = snapshot


class InMemoryPaymentOrderRepository(PaymentOrderRepository):
    def __init__(self, store: InMemoryPaymentStore) -> None:
        self._store = store

    async def create(self, order: PaymentOrder) -> PaymentOrder:
        if order.merchant_order_id in self._store.orders:
            raise StateConflictError(
                f"Payment order already exists: {order.merchant_order_id}",
                details={"merchant_order_id": order.merchant_order_id},
            )
        stored = copy.deepcopy(order)
        stored.id = len(self._store.orders) + 1
        self._store.orders[order.merchant_order_id] = stored
        return copy.deepcopy(stored)

    async def get_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentOrder]:
        order = self._store.orders.get(merchant_order_id)
        return copy.deepcopy(order) if order else None

    async def transition(
        self,
        merchant_order_id: str,
        target: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Optional[PaymentOrder]:
        order = self._store.orders.get(merchant_order_id)
        if order is None:
            return None
        if not order.apply_outcome(target, transaction_id=transaction_id, reason=reason, at=at):
            return None
        return copy.deepcopy(order)

    async def record_checkout(
        self,
        merchant_order_id: str,
        *,
        gateway_order_id: Optional[str],
        redirect_url: Optional[str],
    ) -> None:
        order = self._store.orders.get(merchant_order_id)
        if order is not None:
            order.gateway_order_id = gateway_order_id
            order.redirect_url = redirect_url

    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PaymentOrder]:
        pending = [
            o for o in self._store.orders.values()
            if o.status is PaymentStatus.PENDING and o.last_updated_at < older_than
        ]
        pending.sort(key=lambda o: o.last_updated_at)
        return [copy.deepcopy(o) for o in pending[:limit]]


class InMemoryWebhookEventRepository(WebhookEventRepository):
    def __init__(self, store: InMemoryPaymentStore) -> None:
        self._store = store

    async def add(self, event: WebhookEvent) -> WebhookEvent:
        event.id = len(self._store.events) + 1
        self._store.events.append(copy.deepcopy(event))
        return event

    async def claim(self, dedupe_key: str, at: datetime) -> bool:
        if dedupe_key in self._store.claims:
            return False
        self._store.claims[dedupe_key] = at
        return True

    async def mark_outcome(self, event: WebhookEvent, outcome: WebhookOutcome, at: datetime) -> None:
        event.mark_processed(outcome, at)
        for stored in self._store.events:
            if stored.id == event.id:
                stored.mark_processed(outcome, event.processed_at or utcnow())
                break
