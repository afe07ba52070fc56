"""
Gateway order status lookups.

Strategies raise PaymentError internally; their ``check_status`` turns every
failure into an ERROR GatewayStatus so callers never see an exception. ERROR
results caused by transport or auth trouble carry ``retryable=True``.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from application.dtos.payments import GatewayStatus
from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import (
    AuthError,
    ConfigError,
    GatewayRejectedError,
    NetworkError,
    PaymentError,
)
from infrastructure.external.payments.base import BasePaymentClient, TRANSIENT_STATUS_CODES
from infrastructure.external.payments.normalization import normalize_status
from infrastructure.external.payments.signature import sign
from infrastructure.external.payments.token_manager import TokenManager


def error_status(merchant_order_id: str, message: str, *, retryable: bool, source: str, code: Optional[str] = None) -> GatewayStatus:
    return GatewayStatus(
        merchant_order_id=merchant_order_id,
        status=PaymentStatus.ERROR,
        code=code,
        message=message,
        retryable=retryable,
        source=source,
    )


class StatusStrategy(BasePaymentClient):
    source = "order"

    def __init__(self, *, merchant_id: Optional[str], base_url: str, **kwargs) -> None:
        if not merchant_id:
            raise ConfigError("PhonePe merchant id is not configured (PHONEPE__MERCHANT_ID)")
        super().__init__(base_url=base_url, **kwargs)
        self.merchant_id = merchant_id

    async def fetch(self, merchant_order_id: str) -> GatewayStatus:
        raise NotImplementedError

    async def check_status(self, merchant_order_id: str) -> GatewayStatus:
        try:
            return await self.fetch(merchant_order_id)
        except PaymentError as exc:
            self._log(
                "status_check_failed",
                level="warning",
                merchant_order_id=merchant_order_id,
                source=self.source,
                error_type=type(exc).__name__,
                error=exc.message,
            )
            return error_status(
                merchant_order_id,
                exc.message,
                retryable=exc.retryable,
                source=self.source,
                code=exc.gateway_code,
            )
        except Exception as exc:
            self._log(
                "status_check_unexpected_error",
                level="error",
                exc_info=True,
                merchant_order_id=merchant_order_id,
                source=self.source,
            )
            return error_status(merchant_order_id, str(exc) or type(exc).__name__, retryable=False, source=self.source)

    def _raise_for_status(self, merchant_order_id: str, status_code: int, data: dict) -> None:
        code = data.get("code")
        if status_code in TRANSIENT_STATUS_CODES:
            raise NetworkError(f"Status endpoint unavailable (HTTP {status_code})", gateway_code=code)
        if status_code >= 400:
            raise GatewayRejectedError(
                self._error_message(data, f"Status lookup rejected (HTTP {status_code})"),
                gateway_code=code,
                details={"status_code": status_code, "merchant_order_id": merchant_order_id},
            )


class OrderStatusStrategy(StatusStrategy):
    """OAuth bearer ``GET /checkout/v2/order/{id}/status``."""

    source = "order"

    def __init__(self, token_manager: TokenManager, *, merchant_id: Optional[str], base_url: str, **kwargs) -> None:
        super().__init__(merchant_id=merchant_id, base_url=base_url, **kwargs)
        self._tokens = token_manager

    async def fetch(self, merchant_order_id: str) -> GatewayStatus:
        token = await self._tokens.get_access_token()
        response = await self._send(
            "GET",
            f"/checkout/v2/order/{quote(merchant_order_id, safe='')}/status",
            operation="status_check",
            params={"details": "false"},
            headers={
                "Authorization": token.authorization,
                "X-MERCHANT-ID": self.merchant_id,
                "Content-Type": "application/json",
            },
        )
        data = self._json(response)
        if response.status_code in (401, 403):
            self._tokens.invalidate()
            raise AuthError(
                self._error_message(data, "Gateway rejected the access token"),
                gateway_code=data.get("code"),
            )
        self._raise_for_status(merchant_order_id, response.status_code, data)
        if not data:
            return error_status(merchant_order_id, "Unparseable status response", retryable=False, source=self.source)
        return normalize_status(merchant_order_id, data, source=self.source)


class ChecksumStatusStrategy(StatusStrategy):
    """Legacy ``GET /pg/v1/status/{merchantId}/{id}`` signed with X-VERIFY."""

    source = "checksum"

    def __init__(self, *, merchant_id: Optional[str], salt_key: Optional[str], salt_index: str = "1", base_url: str, **kwargs) -> None:
        if not salt_key:
            raise ConfigError("PhonePe salt key is not configured (PHONEPE__SALT_KEY)")
        super().__init__(merchant_id=merchant_id, base_url=base_url, **kwargs)
        self._salt_key = salt_key
        self._salt_index = str(salt_index)

    async def fetch(self, merchant_order_id: str) -> GatewayStatus:
        path = f"/pg/v1/status/{self.merchant_id}/{quote(merchant_order_id, safe='')}"
        response = await self._send(
            "GET",
            path,
            operation="status_check",
            headers={
                "X-VERIFY": sign(path, self._salt_key, self._salt_index),
                "X-MERCHANT-ID": self.merchant_id,
                "Content-Type": "application/json",
            },
        )
        data = self._json(response)
        if response.status_code in (401, 403):
            raise AuthError(self._error_message(data, "Gateway rejected the checksum"), gateway_code=data.get("code"))
        self._raise_for_status(merchant_order_id, response.status_code, data)
        if not data:
            return error_status(merchant_order_id, "Unparseable status response", retryable=False, source=self.source)
        return normalize_status(merchant_order_id, data, source=self.source)


class FallbackStatusStrategy:
    """Ask the primary; only a retryable ERROR sends the lookup to the secondary."""

    def __init__(self, primary: StatusStrategy, secondary: StatusStrategy) -> None:
        self.primary = primary
        self.secondary = secondary

    async def check_status(self, merchant_order_id: str) -> GatewayStatus:
        result = await self.primary.check_status(merchant_order_id)
        if result.status is PaymentStatus.ERROR and result.retryable:
            self.primary._log(
                "status_strategy_fallback",
                level="warning",
                merchant_order_id=merchant_order_id,
                primary=self.primary.source,
                secondary=self.secondary.source,
                reason=result.message,
            )
            return await self.secondary.check_status(merchant_order_id)
        return result

    async def aclose(self) -> None:
        await self.primary.aclose()
        await self.secondary.aclose()


class StatusPoller:
    """Single status lookup entry point over the configured strategy."""

    def __init__(self, strategy) -> None:
        self.strategy = strategy

    async def check_status(self, merchant_order_id: str) -> GatewayStatus:
        if not merchant_order_id:
            return error_status("", "merchant_order_id is required", retryable=False, source="poller")
        return await self.strategy.check_status(merchant_order_id)

    async def aclose(self) -> None:
        await self.strategy.aclose()
