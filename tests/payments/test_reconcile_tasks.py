from datetime import datetime, timezone

import pytest

from domain.payment.entity import PaymentStatus
from infrastructure.tasks import TaskDispatcher, celery_app
from infrastructure.tasks.config.beat import CELERY_BEAT_SCHEDULE
from infrastructure.tasks.tasks.payments import reconcile_order_async, reconcile_pending_async


RETURN_URL = "https://app.example/payment-status"


def test_tasks_registered_and_scheduled():
    assert "payments.reconcile_pending" in celery_app.tasks
    assert "payments.reconcile_order" in celery_app.tasks
    entry = CELERY_BEAT_SCHEDULE["payments-reconcile-pending"]
    assert entry["task"] == "payments.reconcile_pending"
    assert entry["kwargs"]["older_than_seconds"] > 0


@pytest.mark.asyncio
async def test_reconcile_pending_summary(orchestrator, gateway, clock):
    clock.now = datetime(2020, 1, 1, tzinfo=timezone.utc)
    await orchestrator.start_checkout("10", RETURN_URL, merchant_order_id="ORDER_A")
    await orchestrator.start_checkout("10", RETURN_URL, merchant_order_id="ORDER_B")
    gateway.answer(PaymentStatus.SUCCESS, transaction_id="TXN_1")

    summary = await reconcile_pending_async(older_than_seconds=60, limit=10, orchestrator=orchestrator)

    assert summary == {"checked": 2, "SUCCESS": 2}


@pytest.mark.asyncio
async def test_reconcile_order(orchestrator, gateway):
    await orchestrator.start_checkout("10", RETURN_URL, merchant_order_id="ORDER_A")
    gateway.answer(PaymentStatus.FAILED, message="PAYMENT_DECLINED")

    result = await reconcile_order_async("ORDER_A", orchestrator=orchestrator)

    assert result == {"merchant_order_id": "ORDER_A", "status": "FAILED"}


def test_dispatcher_sends_by_name(monkeypatch):
    sent = []
    monkeypatch.setattr(celery_app, "send_task", lambda name, **kwargs: sent.append((name, kwargs)))

    TaskDispatcher().reconcile_order("ORDER_A", countdown=30)

    assert sent == [("payments.reconcile_order", {"kwargs": {"merchant_order_id": "ORDER_A"}, "countdown": 30})]
