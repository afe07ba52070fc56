import httpx
import pytest
import pytest_asyncio

from api.dependencies import get_payment_orchestrator
from core.exceptions import RETRY_LATER_MESSAGE
from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import NetworkError
from main import app
from shared.codes.payment_codes import PaymentCode


RETURN_URL = "https://app.example/payment-status"


@pytest_asyncio.fixture
async def client(orchestrator):
    app.dependency_overrides[get_payment_orchestrator] = lambda: orchestrator
    try:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def test_payment_routes_registered():
    paths = app.openapi()["paths"]
    assert "/api/v1/payments/webhook" in paths
    assert "/api/v1/payments/checkout" in paths
    assert "/api/v1/payments/orders/{merchant_order_id}" in paths


@pytest.mark.asyncio
async def test_checkout_returns_redirect(client):
    resp = await client.post(
        "/api/v1/payments/checkout",
        json={"amount": "1000.00", "redirect_url": RETURN_URL, "merchant_order_id": "ORDER_1"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"] == {
        "merchant_order_id": "ORDER_1",
        "redirect_url": "https://pay.example/ORDER_1",
        "amount": 100000,
    }


@pytest.mark.asyncio
async def test_checkout_validation_error(client):
    resp = await client.post("/api/v1/payments/checkout", json={"amount": "0", "redirect_url": RETURN_URL})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_checkout_network_failure_is_generic_503(client, gateway):
    gateway.checkout_error = NetworkError("connect timeout to api-preprod", details={"operation": "checkout"})

    resp = await client.post("/api/v1/payments/checkout", json={"amount": "10", "redirect_url": RETURN_URL})

    assert resp.status_code == 503
    body = resp.json()
    assert body["code"] == PaymentCode.NETWORK_ERROR
    assert body["message"] == RETRY_LATER_MESSAGE
    assert body["error"]["details"] is None
    assert "api-preprod" not in resp.text


@pytest.mark.asyncio
async def test_checkout_amount_conflict_is_409(client):
    payload = {"amount": "10", "redirect_url": RETURN_URL, "merchant_order_id": "ORDER_1"}
    assert (await client.post("/api/v1/payments/checkout", json=payload)).status_code == 200

    resp = await client.post("/api/v1/payments/checkout", json={**payload, "amount": "11"})

    assert resp.status_code == 409
    assert resp.json()["code"] == PaymentCode.STATE_CONFLICT


@pytest.mark.asyncio
async def test_webhook_applies_and_acknowledges(client, store, make_webhook):
    await client.post(
        "/api/v1/payments/checkout",
        json={"amount": "1000.00", "redirect_url": RETURN_URL, "merchant_order_id": "ORDER_1"},
    )
    body, header = make_webhook()

    first = await client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={"X-VERIFY": header, "Content-Type": "application/json"},
    )
    replay = await client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={"X-VERIFY": header, "Content-Type": "application/json"},
    )

    assert first.status_code == 200
    assert first.json()["data"] == {"outcome": "applied"}
    assert replay.status_code == 200
    assert replay.json()["data"] == {"outcome": "duplicate"}
    assert store.orders["ORDER_1"].status is PaymentStatus.SUCCESS


@pytest.mark.asyncio
async def test_webhook_with_bad_signature_is_rejected(client, store, make_webhook):
    body, _ = make_webhook()

    resp = await client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={"X-VERIFY": "0" * 64 + "###1", "Content-Type": "application/json"},
    )

    assert resp.status_code == 400
    data = resp.json()
    assert data["code"] == PaymentCode.SIGNATURE_MISMATCH
    assert data["message"] == "Invalid signature"
    assert data["error"]["details"] is None
    assert store.claims == {}


@pytest.mark.asyncio
async def test_webhook_with_deeply_nested_body_is_rejected(client, store):
    resp = await client.post(
        "/api/v1/payments/webhook",
        content=b"[" * 200000,
        headers={"X-VERIFY": "0" * 64 + "###1", "Content-Type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == PaymentCode.SIGNATURE_MISMATCH
    assert store.events[0].verified is False


@pytest.mark.asyncio
async def test_order_lookup(client, make_webhook):
    await client.post(
        "/api/v1/payments/checkout",
        json={"amount": "1000.00", "redirect_url": RETURN_URL, "merchant_order_id": "ORDER_1"},
    )
    body, header = make_webhook()
    await client.post("/api/v1/payments/webhook", content=body, headers={"X-VERIFY": header})

    resp = await client.get("/api/v1/payments/orders/ORDER_1", params={"refresh": "false"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "SUCCESS"
    assert data["amount"] == 100000
    assert data["gateway_transaction_id"] == "TXN_1"


@pytest.mark.asyncio
async def test_unknown_order_is_404(client):
    resp = await client.get("/api/v1/payments/orders/ORDER_404")

    assert resp.status_code == 404
    assert resp.json()["code"] == PaymentCode.ORDER_NOT_FOUND


@pytest.mark.asyncio
async def test_missing_orchestrator_is_config_error():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        resp = await c.get("/api/v1/payments/orders/ORDER_1")

    assert resp.status_code == 500
    assert resp.json()["code"] == PaymentCode.CONFIG_ERROR


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
