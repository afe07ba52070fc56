"""
Composition root for the payment orchestrator.

Shared by the API lifespan and the Celery worker so both wire the same
gateway, unit of work and settings.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional, Sequence

import httpx

from application.services.payment_orchestrator import Listener, PaymentOrchestrator, UnitOfWorkFactory
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments import PhonePeGateway, build_phonepe_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def build_payment_orchestrator(
    settings: Optional[PaymentSettings] = None,
    *,
    uow_factory: UnitOfWorkFactory = SQLAlchemyUnitOfWork,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    listeners: Sequence[Listener] = (),
) -> tuple[PaymentOrchestrator, PhonePeGateway]:
    """Build the orchestrator and the gateway it owns. Raises ConfigError on bad config."""
    settings = settings or payment_settings
    gateway = build_phonepe_gateway(settings, transport=transport)
    orchestrator = PaymentOrchestrator(
        uow_factory,
        checkout=gateway.checkout,
        status=gateway.status,
        authenticator=gateway.authenticator,
        retry=settings.retry,
        reconciliation_window=timedelta(seconds=settings.reconciliation.window_seconds),
        listeners=listeners,
    )
    return orchestrator, gateway
