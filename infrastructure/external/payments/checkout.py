"""
PhonePe standard checkout (``POST /checkout/v2/pay``).

One request per call, no retry: a second attempt with the same merchant order
id is the caller's decision.
"""
from __future__ import annotations

from typing import Any

from application.dtos.payments import CheckoutSession
from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import AuthError, GatewayRejectedError, NetworkError
from infrastructure.external.payments.base import BasePaymentClient, TRANSIENT_STATUS_CODES
from infrastructure.external.payments.token_manager import TokenManager


class CheckoutInitiator(BasePaymentClient):
    PAY_PATH = "/checkout/v2/pay"

    def __init__(self, token_manager: TokenManager, *, base_url: str, **kwargs) -> None:
        super().__init__(base_url=base_url, **kwargs)
        self._tokens = token_manager

    @staticmethod
    def build_request(merchant_order_id: str, amount_minor_units: int, redirect_url: str) -> dict[str, Any]:
        return {
            "merchantOrderId": merchant_order_id,
            "amount": amount_minor_units,
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "merchantUrls": {"redirectUrl": redirect_url},
            },
        }

    async def initiate(self, merchant_order_id: str, amount_minor_units: int, redirect_url: str) -> CheckoutSession:
        if not merchant_order_id:
            raise DomainValidationException("merchant_order_id must not be empty", field="merchant_order_id")
        if isinstance(amount_minor_units, bool) or not isinstance(amount_minor_units, int) or amount_minor_units <= 0:
            raise DomainValidationException("amount must be a positive integer in minor units", field="amount")

        token = await self._tokens.get_access_token()
        response = await self._send(
            "POST",
            self.PAY_PATH,
            operation="checkout",
            json=self.build_request(merchant_order_id, amount_minor_units, redirect_url),
            headers={"Authorization": token.authorization, "Content-Type": "application/json"},
        )
        data = self._json(response)
        status_code = response.status_code
        gateway_code = data.get("code")

        if status_code in (401, 403):
            self._tokens.invalidate()
            self._log("checkout_auth_rejected", level="warning", merchant_order_id=merchant_order_id, status_code=status_code)
            raise AuthError(
                self._error_message(data, "Gateway rejected the access token"),
                gateway_code=gateway_code,
                details={"status_code": status_code},
            )
        if status_code in TRANSIENT_STATUS_CODES:
            self._log("checkout_gateway_unavailable", level="warning", merchant_order_id=merchant_order_id, status_code=status_code)
            raise NetworkError(
                f"Checkout unavailable (HTTP {status_code})",
                gateway_code=gateway_code,
                details={"status_code": status_code},
            )
        if status_code >= 400:
            self._log("checkout_rejected", level="warning", merchant_order_id=merchant_order_id, status_code=status_code, code=gateway_code)
            raise GatewayRejectedError(
                self._error_message(data, f"Checkout rejected (HTTP {status_code})"),
                gateway_code=gateway_code,
                details={"status_code": status_code},
            )

        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        redirect = data.get("redirectUrl") or nested.get("redirectUrl")
        if not redirect:
            self._log("checkout_missing_redirect", level="warning", merchant_order_id=merchant_order_id)
            raise GatewayRejectedError("Checkout response carried no redirect URL", gateway_code=gateway_code)

        self._log("checkout_session_created", merchant_order_id=merchant_order_id, amount=amount_minor_units)
        return CheckoutSession(
            merchant_order_id=merchant_order_id,
            redirect_url=str(redirect),
            amount=amount_minor_units,
            gateway_order_id=data.get("orderId") or nested.get("orderId"),
            state=data.get("state") or nested.get("state"),
        )
