"""
OAuth client-credentials token cache for the PhonePe gateway.

One refresh at a time: callers arriving while a refresh is in flight wait on
the lock and then find the fresh token already cached. The lock is held only
for the check-and-refresh window, never around checkout or status calls.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from domain.payment.exceptions import AuthError, ConfigError, NetworkError
from infrastructure.external.payments.base import BasePaymentClient, TRANSIENT_STATUS_CODES


DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float  # epoch seconds, as granted by the gateway
    token_type: str = "O-Bearer"

    def is_usable(self, now: float, safety_margin: float) -> bool:
        return now < self.expires_at - safety_margin

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.value}"

    def __repr__(self) -> str:
        return f"AccessToken(expires_at={self.expires_at!r}, token_type={self.token_type!r})"


class TokenManager(BasePaymentClient):
    TOKEN_PATH = "/v1/oauth/token"

    def __init__(
        self,
        *,
        client_id: Optional[str],
        client_secret: Optional[str],
        client_version: str = "1",
        base_url: str,
        safety_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
        **kwargs,
    ) -> None:
        if not client_id or not client_secret:
            raise ConfigError("PhonePe client credentials are not configured (PHONEPE__CLIENT_ID / PHONEPE__CLIENT_SECRET)")
        super().__init__(base_url=base_url, **kwargs)
        self._client_id = client_id
        self._client_secret = client_secret
        self._client_version = str(client_version or "1")
        self._safety_margin = float(safety_margin)
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after the gateway answered 401 to it."""
        self._token = None

    async def get_access_token(self) -> AccessToken:
        token = self._token
        if token is not None and token.is_usable(self._clock(), self._safety_margin):
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            now = self._clock()
            token = self._token
            if token is not None and token.is_usable(now, self._safety_margin):
                return token
            if token is not None and token.is_expired(now):
                self._token = None
            # Assigned only after a complete, successful fetch: a failed or
            # cancelled refresh leaves the previous token (or nothing) in place.
            fresh = await self._fetch_token()
            self._token = fresh
            return fresh

    async def _fetch_token(self) -> AccessToken:
        issued_at = self._clock()
        self._log("oauth_token_refresh_started", client_version=self._client_version)
        response = await self._send(
            "POST",
            self.TOKEN_PATH,
            operation="oauth_token",
            data={
                "client_id": self._client_id,
                "client_version": self._client_version,
                "client_secret": self._client_secret,
                "grant_type": "client_credentials",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        data = self._json(response)
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise NetworkError(
                f"Token endpoint unavailable (HTTP {response.status_code})",
                gateway_code=data.get("code"),
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            self._log("oauth_token_rejected", level="warning", status_code=response.status_code, code=data.get("code"))
            raise AuthError(
                self._error_message(data, f"Token endpoint rejected credentials (HTTP {response.status_code})"),
                gateway_code=data.get("code"),
                details={"status_code": response.status_code},
            )
        value = data.get("access_token")
        if not value:
            raise AuthError("Token endpoint returned no access_token")

        try:
            expires_in = float(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        token = AccessToken(
            value=str(value),
            expires_at=issued_at + expires_in,
            token_type=str(data.get("token_type") or "O-Bearer"),
        )
        self.refresh_count += 1
        self._log("oauth_token_refreshed", expires_in=expires_in)
        return token
