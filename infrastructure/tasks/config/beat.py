"""Celery beat schedule.

Reconciliation polls PENDING orders that have not heard from the gateway
inside the configured window.
"""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "payments-reconcile-pending": {
        "task": "payments.reconcile_pending",
        "schedule": float(payment_settings.reconciliation.interval_seconds),
        "kwargs": {
            "older_than_seconds": payment_settings.reconciliation.window_seconds,
            "limit": payment_settings.reconciliation.batch_size,
        },
        # A run that outlives the next tick is not worth executing twice
        "options": {"expires": float(payment_settings.reconciliation.interval_seconds)},
    },
}
