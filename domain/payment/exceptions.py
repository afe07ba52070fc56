"""
Payment failure taxonomy mapped to unified BusinessException variants.

Every gateway-facing component raises one of these; callers decide on retry
from the type alone:

- ConfigError: fatal at construction, never retried
- AuthError / NetworkError: retryable by the caller with backoff
- GatewayRejectedError: not retryable with the same parameters
- SignatureMismatchError: security rejection, never retried
- StateConflictError: duplicate or unknown result, recorded only
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentError(BusinessException):
    code_value: PaymentCode = PaymentCode.NETWORK_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        gateway_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        full_details = {"gateway_code": gateway_code} if gateway_code else {}
        if details:
            full_details.update(details)
        super().__init__(
            code=self.code_value,
            message=message,
            error_type=type(self).__name__,
            details=full_details or None,
        )
        self.gateway_code = gateway_code


class ConfigError(PaymentError):
    code_value = PaymentCode.CONFIG_ERROR


class AuthError(PaymentError):
    code_value = PaymentCode.AUTH_ERROR
    retryable = True


class NetworkError(PaymentError):
    code_value = PaymentCode.NETWORK_ERROR
    retryable = True


class GatewayRejectedError(PaymentError):
    code_value = PaymentCode.GATEWAY_REJECTED


class SignatureMismatchError(PaymentError):
    code_value = PaymentCode.SIGNATURE_MISMATCH

    def __init__(self, message: str = "Invalid signature", **kwargs):
        super().__init__(message, **kwargs)


class StateConflictError(PaymentError):
    code_value = PaymentCode.STATE_CONFLICT


class PaymentOrderNotFoundError(PaymentError):
    code_value = PaymentCode.ORDER_NOT_FOUND

    def __init__(self, merchant_order_id: str):
        super().__init__(
            f"Payment order not found: {merchant_order_id}",
            details={"merchant_order_id": merchant_order_id},
        )
