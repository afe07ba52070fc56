import base64
import json
from collections import deque
from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.payments import CheckoutSession, GatewayStatus
from application.services.payment_orchestrator import PaymentOrchestrator
from core.settings import PaymentRetry
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.signature import SignatureVerifier, sign
from infrastructure.repositories.inmemory_payment_repository import InMemoryPaymentStore
from infrastructure.unit_of_work import InMemoryUnitOfWork


WEBHOOK_SECRET = "test-webhook-secret"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class StubGateway:
    """Checkout and status stand-in; status answers are served in order, the last one repeats."""

    def __init__(self):
        self.checkout_calls = []
        self.checkout_error = None
        self.status_answers = deque()
        self.status_calls = []

    async def initiate(self, merchant_order_id, amount_minor_units, redirect_url):
        self.checkout_calls.append((merchant_order_id, amount_minor_units, redirect_url))
        if self.checkout_error is not None:
            raise self.checkout_error
        return CheckoutSession(
            merchant_order_id=merchant_order_id,
            redirect_url=f"https://pay.example/{merchant_order_id}",
            amount=amount_minor_units,
            gateway_order_id=f"OMO_{merchant_order_id}",
            state="PENDING",
        )

    def answer(self, status, **kwargs):
        self.status_answers.append((PaymentStatus(status), kwargs))

    async def check_status(self, merchant_order_id):
        self.status_calls.append(merchant_order_id)
        if not self.status_answers:
            return GatewayStatus(merchant_order_id=merchant_order_id, status=PaymentStatus.PENDING)
        status, kwargs = self.status_answers[0] if len(self.status_answers) == 1 else self.status_answers.popleft()
        return GatewayStatus(merchant_order_id=merchant_order_id, status=status, **kwargs)


def encode_payload(payload: dict) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def webhook_payload(merchant_order_id="ORDER_1", transaction_id="TXN_1", state="COMPLETED", code=None, amount=100000):
    data = {
        "merchantOrderId": merchant_order_id,
        "transactionId": transaction_id,
        "state": state,
        "amount": amount,
    }
    return {"success": True, "code": code or "", "message": "", "data": data}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def store():
    return InMemoryPaymentStore()


@pytest.fixture
def verifier():
    return SignatureVerifier(WEBHOOK_SECRET, "1")


@pytest.fixture
def orchestrator(store, gateway, verifier, clock):
    return PaymentOrchestrator(
        lambda: InMemoryUnitOfWork(store),
        checkout=gateway,
        status=gateway,
        authenticator=verifier,
        retry=PaymentRetry(attempts=3, base_backoff=0, max_backoff=0),
        clock=clock,
    )


@pytest.fixture
def signed_webhook():
    """Build (raw_body, x_verify) for a webhook carrying `payload`."""

    def _build(payload: dict, secret: str = WEBHOOK_SECRET, salt_index: str = "1"):
        encoded = encode_payload(payload)
        body = json.dumps({"response": encoded}).encode("utf-8")
        return body, sign(encoded, secret, salt_index)

    return _build


@pytest.fixture
def make_webhook(signed_webhook):
    def _build(**kwargs):
        return signed_webhook(webhook_payload(**kwargs))

    return _build
