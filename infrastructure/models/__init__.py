"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentOrderModel, WebhookEventModel, WebhookClaimModel

__all__ = [
    "Base",
    "metadata",
    "PaymentOrderModel",
    "WebhookEventModel",
    "WebhookClaimModel",
]
