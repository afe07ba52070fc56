import json

import httpx
import pytest

from core.settings import PaymentRetry, PaymentSettings, PhonePeSettings
from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import ConfigError
from infrastructure.bootstrap import build_payment_orchestrator
from infrastructure.external.payments import build_phonepe_gateway
from infrastructure.external.payments.signature import sign
from infrastructure.external.payments.status import FallbackStatusStrategy, OrderStatusStrategy
from infrastructure.unit_of_work import InMemoryUnitOfWork


def settings(**phonepe) -> PaymentSettings:
    base = {
        "merchant_id": "M_TEST",
        "client_id": "cid",
        "client_secret": "csecret",
        "webhook_secret": "whsecret",
        "base_url": "https://gateway.test",
    }
    base.update(phonepe)
    return PaymentSettings(
        phonepe=PhonePeSettings(**base),
        retry=PaymentRetry(attempts=1, base_backoff=0, max_backoff=0),
    )


@pytest.mark.asyncio
async def test_gateway_built_from_settings():
    gateway = build_phonepe_gateway(settings())
    try:
        assert isinstance(gateway.status.strategy, OrderStatusStrategy)
        assert gateway.checkout.base_url == "https://gateway.test"
        assert gateway.authenticator.verify(b"abc", sign(b"abc", "whsecret"))
    finally:
        await gateway.aclose()


@pytest.mark.parametrize(
    "overrides",
    [
        {"merchant_id": None},
        {"client_id": None},
        {"client_secret": None},
        {"webhook_secret": None},
        {"status_fallback": "checksum"},
    ],
)
def test_missing_configuration_is_fatal(overrides):
    with pytest.raises(ConfigError):
        build_phonepe_gateway(settings(**overrides))


@pytest.mark.asyncio
async def test_client_secret_as_webhook_secret_only_when_allowed():
    gateway = build_phonepe_gateway(settings(webhook_secret=None, allow_client_secret_as_webhook_secret=True))
    try:
        assert gateway.authenticator.verify(b"abc", sign(b"abc", "csecret"))
    finally:
        await gateway.aclose()


@pytest.mark.asyncio
async def test_checksum_fallback_strategy():
    gateway = build_phonepe_gateway(settings(status_fallback="checksum", salt_key="salt"))
    try:
        assert isinstance(gateway.status.strategy, FallbackStatusStrategy)
    finally:
        await gateway.aclose()


def test_environment_selects_base_url():
    assert PhonePeSettings(env="production").resolved_base_url == "https://api.phonepe.com/apis/hermes"
    assert PhonePeSettings(env="sandbox").resolved_base_url == "https://api-preprod.phonepe.com/apis/pg-sandbox"
    assert PhonePeSettings(base_url="https://x.test/").resolved_base_url == "https://x.test"


@pytest.mark.asyncio
async def test_orchestrator_end_to_end_over_http(store):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/v1/oauth/token":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        if request.url.path == "/checkout/v2/pay":
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "orderId": "OMO1",
                "state": "PENDING",
                "redirectUrl": f"https://mercury.test/{body['merchantOrderId']}",
            })
        return httpx.Response(200, json={
            "orderId": "OMO1",
            "state": "COMPLETED",
            "paymentDetails": [{"transactionId": "TXN_77", "state": "COMPLETED"}],
        })

    orchestrator, gateway = build_payment_orchestrator(
        settings(),
        uow_factory=lambda: InMemoryUnitOfWork(store),
        transport=httpx.MockTransport(handler),
    )
    try:
        session = await orchestrator.start_checkout("1000.00", "https://app.example/return", merchant_order_id="ORDER_1")
        order = await orchestrator.reconcile("ORDER_1")
    finally:
        await gateway.aclose()

    assert session.redirect_url == "https://mercury.test/ORDER_1"
    assert order.status is PaymentStatus.SUCCESS
    assert order.gateway_transaction_id == "TXN_77"
    assert seen == ["/v1/oauth/token", "/checkout/v2/pay", "/checkout/v2/order/ORDER_1/status"]
