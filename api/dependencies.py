"""
API dependencies.
"""
from fastapi import Request

from application.services.payment_orchestrator import PaymentOrchestrator
from domain.payment.exceptions import ConfigError


async def get_payment_orchestrator(request: Request) -> PaymentOrchestrator:
    """The orchestrator built once in the application lifespan."""
    orchestrator = getattr(request.app.state, "payment_orchestrator", None)
    if orchestrator is None:
        raise ConfigError("Payment orchestrator is not initialized")
    return orchestrator
