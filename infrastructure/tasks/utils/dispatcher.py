"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from ..config.celery import celery_app


class TaskDispatcher:
    """Schedules payment tasks by name so callers never import task modules."""

    def reconcile_order(self, merchant_order_id: str, *, countdown: Optional[float] = None) -> None:
        celery_app.send_task(
            "payments.reconcile_order",
            kwargs={"merchant_order_id": merchant_order_id},
            countdown=countdown,
        )

    def reconcile_pending(self, *, older_than_seconds: Optional[int] = None, limit: Optional[int] = None) -> None:
        celery_app.send_task(
            "payments.reconcile_pending",
            kwargs={"older_than_seconds": older_than_seconds, "limit": limit},
        )

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
