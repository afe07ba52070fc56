"""
Map PhonePe response payloads to the canonical status vocabulary.

Payloads come in two shapes: the v2 order status body (fields at top level,
attempts under ``paymentDetails``) and the legacy envelope
(``{success, code, message, data: {...}}``). Webhook bodies use the legacy
envelope too.
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import GatewayStatus
from domain.payment.entity import PaymentStatus
from shared.codes.payment_codes import (
    GATEWAY_FAILURE_CODES,
    GATEWAY_PENDING_CODES,
    GATEWAY_STATE_TO_INTERNAL,
    GATEWAY_SUCCESS_CODES,
)


ORDER_ID_KEYS = ("merchantOrderId", "merchantTransactionId", "orderId")


def _body(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, dict) else payload


def _first_attempt(body: dict[str, Any]) -> dict[str, Any]:
    details = body.get("paymentDetails")
    if isinstance(details, list) and details and isinstance(details[0], dict):
        return details[0]
    return {}


def _upper(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value).strip().upper()


def extract_merchant_order_id(payload: dict[str, Any]) -> Optional[str]:
    """Order id under any of the names the gateway has used for it."""
    for source in (_body(payload), payload):
        for key in ORDER_ID_KEYS:
            value = source.get(key)
            if value:
                return str(value)
    return None


def extract_transaction_id(payload: dict[str, Any]) -> Optional[str]:
    body = _body(payload)
    instrument = body.get("paymentInstrument")
    candidates = [
        body.get("transactionId"),
        instrument.get("instrumentReferenceId") if isinstance(instrument, dict) else None,
        _first_attempt(body).get("transactionId"),
    ]
    for value in candidates:
        if value:
            return str(value)
    return None


def extract_amount(payload: dict[str, Any]) -> Optional[int]:
    value = _body(payload).get("amount")
    if isinstance(value, bool):
        return None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def classify(code: Optional[str], state: Optional[str]) -> Optional[PaymentStatus]:
    """Canonical status for a gateway code/state pair, or None when unrecognized."""
    by_state = GATEWAY_STATE_TO_INTERNAL.get(state or "")
    if code in GATEWAY_SUCCESS_CODES or by_state == "SUCCESS":
        return PaymentStatus.SUCCESS
    if code in GATEWAY_FAILURE_CODES or by_state == "FAILED":
        return PaymentStatus.FAILED
    if code in GATEWAY_PENDING_CODES or by_state == "PENDING":
        return PaymentStatus.PENDING
    return None


def normalize_status(
    merchant_order_id: str,
    payload: Any,
    *,
    source: str = "order",
) -> GatewayStatus:
    if not isinstance(payload, dict):
        return GatewayStatus(
            merchant_order_id=merchant_order_id,
            status=PaymentStatus.ERROR,
            message="Unparseable status response",
            source=source,
        )

    body = _body(payload)
    code = _upper(payload.get("code") or body.get("code") or body.get("responseCode"))
    state = _upper(body.get("state") or body.get("transactionState") or payload.get("state"))
    status = classify(code, state)
    message = payload.get("message") or body.get("message")

    if status is None:
        status = PaymentStatus.ERROR
        message = message or f"Unrecognized gateway status (code={code}, state={state})"

    return GatewayStatus(
        # A lookup already knows its id; v2 bodies carry only the gateway's own orderId
        merchant_order_id=merchant_order_id or extract_merchant_order_id(payload) or "",
        status=status,
        code=code,
        state=state,
        transaction_id=extract_transaction_id(payload),
        message=str(message) if message else None,
        retryable=False,
        source=source,
        raw=payload,
    )
