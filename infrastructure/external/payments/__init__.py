"""
Factory for the PhonePe gateway components.

All components share one httpx.AsyncClient owned by the returned bundle.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from core.logging_config import get_logger
from core.settings import PaymentSettings, PhonePeSettings, payment_settings
from domain.payment.exceptions import ConfigError
from infrastructure.external.payments.checkout import CheckoutInitiator
from infrastructure.external.payments.signature import SignatureVerifier
from infrastructure.external.payments.status import (
    ChecksumStatusStrategy,
    FallbackStatusStrategy,
    OrderStatusStrategy,
    StatusPoller,
)
from infrastructure.external.payments.token_manager import TokenManager


logger = get_logger(__name__)


@dataclass
class PhonePeGateway:
    token_manager: TokenManager
    checkout: CheckoutInitiator
    status: StatusPoller
    authenticator: SignatureVerifier
    http_client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http_client.aclose()


def resolve_webhook_secret(cfg: PhonePeSettings) -> str:
    if cfg.webhook_secret:
        return cfg.webhook_secret
    if cfg.allow_client_secret_as_webhook_secret and cfg.client_secret:
        logger.warning("webhook_secret_falls_back_to_client_secret")
        return cfg.client_secret
    raise ConfigError("Webhook secret is not configured (PHONEPE__WEBHOOK_SECRET)")


def _check_required(cfg: PhonePeSettings) -> None:
    """Raise before any client is opened so a misconfigured start leaks nothing."""
    if not cfg.merchant_id:
        raise ConfigError("PhonePe merchant id is not configured (PHONEPE__MERCHANT_ID)")
    if not cfg.client_id or not cfg.client_secret:
        raise ConfigError("PhonePe client credentials are not configured (PHONEPE__CLIENT_ID / PHONEPE__CLIENT_SECRET)")
    if "checksum" in (cfg.status_strategy, cfg.status_fallback) and not cfg.salt_key:
        raise ConfigError("PhonePe salt key is not configured (PHONEPE__SALT_KEY)")


def _strategy(name: str, cfg: PhonePeSettings, tokens: TokenManager, common: dict):
    if name == "checksum":
        return ChecksumStatusStrategy(
            merchant_id=cfg.merchant_id,
            salt_key=cfg.salt_key,
            salt_index=cfg.salt_index,
            **common,
        )
    return OrderStatusStrategy(tokens, merchant_id=cfg.merchant_id, **common)


def build_phonepe_gateway(
    settings: Optional[PaymentSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.time,
) -> PhonePeGateway:
    """Build every gateway component from settings; ConfigError on anything missing."""
    settings = settings or payment_settings
    cfg = settings.phonepe
    timeouts = settings.timeouts.model_dump()

    authenticator = SignatureVerifier(resolve_webhook_secret(cfg), cfg.salt_index)
    _check_required(cfg)

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=timeouts["connect"],
            read=timeouts["read"],
            write=timeouts["write"],
            timeout=timeouts["total"],
        ),
        transport=transport,
    )
    common = {"base_url": cfg.resolved_base_url, "timeouts": timeouts, "client": http_client}
    tokens = TokenManager(
        client_id=cfg.client_id,
        client_secret=cfg.client_secret,
        client_version=cfg.client_version,
        safety_margin=cfg.token_safety_margin_seconds,
        clock=clock,
        **common,
    )
    strategy = _strategy(cfg.status_strategy, cfg, tokens, common)
    if cfg.status_fallback and cfg.status_fallback != cfg.status_strategy:
        strategy = FallbackStatusStrategy(strategy, _strategy(cfg.status_fallback, cfg, tokens, common))
    checkout = CheckoutInitiator(tokens, **common)

    logger.info(
        "phonepe_gateway_configured",
        env=cfg.env.value,
        base_url=cfg.resolved_base_url,
        status_strategy=cfg.status_strategy,
        status_fallback=cfg.status_fallback,
    )
    return PhonePeGateway(
        token_manager=tokens,
        checkout=checkout,
        status=StatusPoller(strategy),
        authenticator=authenticator,
        http_client=http_client,
    )
