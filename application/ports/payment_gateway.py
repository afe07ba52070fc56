"""
Payment gateway ports (application/ports) exposing replaceable protocols.

The orchestrator depends on these Protocols; infrastructure implements them.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CheckoutSession, GatewayStatus, WebhookNotification


@runtime_checkable
class CheckoutGateway(Protocol):
    async def initiate(
        self,
        merchant_order_id: str,
        amount_minor_units: int,
        redirect_url: str,
    ) -> CheckoutSession: ...


@runtime_checkable
class StatusGateway(Protocol):
    """Must never raise for gateway or transport trouble: returns ERROR instead."""

    async def check_status(self, merchant_order_id: str) -> GatewayStatus: ...


@runtime_checkable
class WebhookAuthenticator(Protocol):
    """Pure signature check plus payload decoding for inbound webhooks."""

    def verify(self, encoded_payload: bytes, signature_header: str | None) -> bool: ...

    def decode(self, encoded_payload: bytes) -> WebhookNotification: ...
