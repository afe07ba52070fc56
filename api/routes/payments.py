"""
Payments API routes.

Exposes the gateway webhook receiver, checkout initiation and order status
lookup via the application orchestrator. Keep this thin: no gateway details here.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from api.dependencies import get_payment_orchestrator
from application.dtos.payments import PaymentOrderView, StartCheckout
from application.services.payment_orchestrator import PaymentOrchestrator
from core.logging_config import get_logger
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhook", summary="Gateway callback")
async def payments_webhook(
    request: Request,
    x_verify: Optional[str] = Header(default=None, alias="X-VERIFY"),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    # A bad signature surfaces as SignatureMismatchError -> 400 with a generic body
    raw_body = await request.body()
    result = await orchestrator.handle_webhook(raw_body, x_verify)
    # 200 acknowledges receipt; the gateway stops redelivering
    return success_response(
        data={"outcome": result.outcome.value},
        message="Webhook received",
    )


@router.post("/checkout", summary="Start checkout")
async def start_checkout(
    payload: StartCheckout,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    session = await orchestrator.start_checkout(
        amount=payload.amount,
        redirect_url=payload.redirect_url,
        merchant_order_id=payload.merchant_order_id,
        metadata=payload.metadata,
    )
    return success_response(
        data={
            "merchant_order_id": session.merchant_order_id,
            "redirect_url": session.redirect_url,
            "amount": session.amount,
        },
        message="Checkout initiated",
    )


@router.get("/orders/{merchant_order_id}", summary="Order status")
async def get_order(
    merchant_order_id: str,
    refresh: bool = Query(default=True, description="Poll the gateway while the order is pending"),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    order = await orchestrator.get_order(merchant_order_id, refresh=refresh)
    return success_response(data=PaymentOrderView.from_entity(order).model_dump(mode="json"))
