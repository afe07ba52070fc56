"""
Base PhonePe client implementing shared concerns: http, timeouts, error translation, logging.

Concrete components (token manager, checkout, status strategies) subclass it.
Nothing here retries: retry policy belongs to callers.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from core.logging_config import get_logger
from domain.payment.exceptions import NetworkError


logger = get_logger(__name__)

DEFAULT_TIMEOUTS = {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 15.0}

# Gateway-side statuses that mean "try again later" rather than "no"
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


class BasePaymentClient:
    provider: str = "phonepe"

    def __init__(
        self,
        *,
        base_url: str,
        timeouts: Optional[dict[str, float]] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeouts_cfg = {**DEFAULT_TIMEOUTS, **(timeouts or {})}
        self._transport = transport
        self._client = client
        # Only close what we created
        self._owns_client = client is None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created here."""
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(self, method: str, path: str, *, operation: str, **kwargs: Any) -> httpx.Response:
        """Issue one request; transport failures and timeouts become NetworkError."""
        url = self._url(path)
        try:
            return await asyncio.wait_for(
                self.client().request(method, url, **kwargs),
                timeout=self._timeouts_cfg["total"],
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            self._log(f"{operation}_timeout", level="warning", error=str(exc) or type(exc).__name__)
            raise NetworkError(
                f"{operation} timed out",
                details={"operation": operation},
            ) from exc
        except httpx.TransportError as exc:
            self._log(f"{operation}_transport_error", level="warning", error=str(exc) or type(exc).__name__)
            raise NetworkError(
                f"{operation} failed: {exc}",
                details={"operation": operation},
            ) from exc

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_message(data: dict[str, Any], fallback: str) -> str:
        return str(data.get("message") or data.get("error_description") or data.get("error") or fallback)

    def _log(self, event: str, level: str = "info", **kwargs) -> None:
        getattr(logger, level)(
            event,
            provider=self.provider,
            **kwargs,
        )
