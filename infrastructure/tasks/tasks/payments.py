"""
Celery tasks for payment reconciliation.

Pending orders that saw no webhook inside the reconciliation window are
polled and settled. Each task run gets its own event loop (asyncio.run), so
the database pool is disposed before the loop closes.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Optional

from celery import shared_task

from application.services.payment_orchestrator import PaymentOrchestrator
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.payment.entity import utcnow
from infrastructure.bootstrap import build_payment_orchestrator
from infrastructure.database import engine
from ..utils.base_task import BaseTask


logger = get_logger(__name__)


@asynccontextmanager
async def _orchestrator_scope(orchestrator: Optional[PaymentOrchestrator]) -> AsyncIterator[PaymentOrchestrator]:
    if orchestrator is not None:
        yield orchestrator
        return
    built, gateway = build_payment_orchestrator()
    try:
        yield built
    finally:
        await gateway.aclose()
        await engine.dispose()


async def reconcile_pending_async(
    older_than_seconds: Optional[int] = None,
    limit: Optional[int] = None,
    *,
    orchestrator: Optional[PaymentOrchestrator] = None,
) -> dict:
    """Reconcile stale PENDING orders; returns counts per resulting status."""
    window = older_than_seconds if older_than_seconds is not None else payment_settings.reconciliation.window_seconds
    batch = limit or payment_settings.reconciliation.batch_size

    async with _orchestrator_scope(orchestrator) as orch:
        orders = await orch.reconcile_pending(
            older_than=utcnow() - timedelta(seconds=window),
            limit=batch,
        )

    summary: dict[str, int] = {"checked": len(orders)}
    for order in orders:
        summary[order.status.value] = summary.get(order.status.value, 0) + 1
    return summary


async def reconcile_order_async(merchant_order_id: str, *, orchestrator: Optional[PaymentOrchestrator] = None) -> dict:
    async with _orchestrator_scope(orchestrator) as orch:
        order = await orch.reconcile(merchant_order_id)
    return {"merchant_order_id": order.merchant_order_id, "status": order.status.value}


@shared_task(name="payments.reconcile_pending", bind=True, base=BaseTask)
def reconcile_pending(self, older_than_seconds: Optional[int] = None, limit: Optional[int] = None) -> dict:
    summary = asyncio.run(reconcile_pending_async(older_than_seconds, limit))
    logger.info("payment_reconcile_task_completed", **summary)
    return summary


@shared_task(name="payments.reconcile_order", bind=True, base=BaseTask)
def reconcile_order(self, merchant_order_id: str) -> dict:
    """Poll one order on demand (e.g. the user came back from the checkout page)."""
    result = asyncio.run(reconcile_order_async(merchant_order_id))
    logger.info("payment_reconcile_order_completed", **result)
    return result
