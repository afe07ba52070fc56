import base64
import hashlib
import json

import pytest

from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import ConfigError, SignatureMismatchError
from infrastructure.external.payments.signature import SignatureVerifier, compute_digest, sign, split_header, verify


SECRET = "webhook-secret"
PAYLOAD = base64.b64encode(json.dumps({"code": "PAYMENT_SUCCESS", "data": {"merchantOrderId": "ORDER_1"}}).encode()).decode()


def test_header_format_matches_sha256_of_payload_plus_secret():
    expected = hashlib.sha256((PAYLOAD + SECRET).encode()).hexdigest()
    assert compute_digest(PAYLOAD, SECRET) == expected
    assert sign(PAYLOAD, SECRET, "1") == f"{expected}###1"


def test_sign_is_deterministic_and_verifies():
    header = sign(PAYLOAD, SECRET)
    assert header == sign(PAYLOAD.encode(), SECRET)
    assert verify(PAYLOAD, header, SECRET)
    assert verify(PAYLOAD.encode(), header, SECRET)


@pytest.mark.parametrize("position", [0, 10, 31, 63])
def test_flipping_a_digest_character_fails(position):
    header = sign(PAYLOAD, SECRET)
    flipped = "0" if header[position] != "0" else "1"
    tampered = header[:position] + flipped + header[position + 1:]
    assert not verify(PAYLOAD, tampered, SECRET)


@pytest.mark.parametrize("position", [0, 5, len(PAYLOAD) // 2, len(PAYLOAD) - 3])
def test_flipping_a_payload_byte_fails(position):
    header = sign(PAYLOAD, SECRET)
    raw = bytearray(PAYLOAD.encode())
    raw[position] ^= 0x01
    assert not verify(bytes(raw), header, SECRET)


def test_wrong_secret_fails():
    assert not verify(PAYLOAD, sign(PAYLOAD, "other-secret"), SECRET)


@pytest.mark.parametrize("header", [None, "", "###1", "deadbeef", "not a header at all", 12345])
def test_missing_or_malformed_header_fails_without_raising(header):
    assert not verify(PAYLOAD, header, SECRET)


def test_split_header():
    assert split_header("abc###2") == ("abc", "2")
    assert split_header("abc") is None
    assert split_header(None) is None


def test_single_secret_verifier_accepts_any_salt_index():
    verifier = SignatureVerifier(SECRET, "1")
    assert verifier.verify(PAYLOAD, sign(PAYLOAD, SECRET, "1"))
    assert verifier.verify(PAYLOAD, sign(PAYLOAD, SECRET, "2"))
    assert not verifier.verify(PAYLOAD, sign(PAYLOAD, "other-secret", "2"))


def test_verifier_accepts_rotated_secrets_by_salt_index():
    verifier = SignatureVerifier(secrets={"1": "old-secret", "2": "new-secret"}, salt_index="2")
    assert verifier.verify(PAYLOAD, sign(PAYLOAD, "old-secret", "1"))
    assert verifier.verify(PAYLOAD, sign(PAYLOAD, "new-secret", "2"))
    assert not verifier.verify(PAYLOAD, sign(PAYLOAD, "old-secret", "2"))
    assert not verifier.verify(PAYLOAD, sign(PAYLOAD, "new-secret", "3"))
    assert verifier.sign(PAYLOAD) == sign(PAYLOAD, "new-secret", "2")


def test_verifier_without_secret_is_a_config_error():
    with pytest.raises(ConfigError):
        SignatureVerifier(None)
    with pytest.raises(ConfigError):
        SignatureVerifier(secrets={"1": ""})


def test_decode_envelope_payload():
    verifier = SignatureVerifier(SECRET)
    encoded = base64.b64encode(json.dumps({
        "success": True,
        "code": "PAYMENT_SUCCESS",
        "data": {
            "merchantTransactionId": "ORDER_9",
            "transactionId": "TXN_9",
            "amount": 25050,
            "state": "COMPLETED",
        },
    }).encode())

    notification = verifier.decode(encoded)

    assert notification.merchant_order_id == "ORDER_9"
    assert notification.transaction_id == "TXN_9"
    assert notification.status is PaymentStatus.SUCCESS
    assert notification.code == "PAYMENT_SUCCESS"
    assert notification.amount == 25050


def test_decode_flat_failed_payload():
    verifier = SignatureVerifier(SECRET)
    encoded = base64.b64encode(json.dumps({
        "merchantOrderId": "ORDER_2",
        "state": "FAILED",
        "paymentDetails": [{"transactionId": "TXN_2", "state": "FAILED"}],
    }).encode())

    notification = verifier.decode(encoded)

    assert notification.status is PaymentStatus.FAILED
    assert notification.transaction_id == "TXN_2"
    assert notification.amount is None


@pytest.mark.parametrize("encoded", [b"%%%not-base64%%%", base64.b64encode(b"not json"), base64.b64encode(b"[1, 2]")])
def test_decode_rejects_unreadable_payloads(encoded):
    with pytest.raises(SignatureMismatchError):
        SignatureVerifier(SECRET).decode(encoded)
