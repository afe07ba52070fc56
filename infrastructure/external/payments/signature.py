"""
Webhook signature checks (X-VERIFY) and webhook payload decoding.

Header format: ``sha256_hex(encoded_payload + secret) + "###" + salt_index``.
``encoded_payload`` is the base64 string carried in the webhook body's
``response`` field, exactly as received.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from typing import Mapping, Optional, Union

from application.dtos.payments import WebhookNotification
from core.logging_config import get_logger
from domain.payment.exceptions import ConfigError, SignatureMismatchError
from infrastructure.external.payments.normalization import (
    extract_amount,
    normalize_status,
)


logger = get_logger(__name__)

SEPARATOR = "###"

BytesLike = Union[bytes, str]


def _as_bytes(value: BytesLike) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def compute_digest(encoded_payload: BytesLike, secret: str) -> str:
    return hashlib.sha256(_as_bytes(encoded_payload) + secret.encode("utf-8")).hexdigest()


def sign(encoded_payload: BytesLike, secret: str, salt_index: str = "1") -> str:
    return f"{compute_digest(encoded_payload, secret)}{SEPARATOR}{salt_index}"


def split_header(signature_header: Optional[str]) -> Optional[tuple[str, str]]:
    if not signature_header or not isinstance(signature_header, str):
        return None
    digest, sep, salt_index = signature_header.strip().partition(SEPARATOR)
    if not sep or not digest:
        return None
    return digest, salt_index


def verify(encoded_payload: BytesLike, signature_header: Optional[str], secret: str) -> bool:
    """Constant-time check of an X-VERIFY header. Never raises for bad input."""
    parts = split_header(signature_header)
    if parts is None or not secret:
        return False
    expected = compute_digest(encoded_payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), parts[0].encode("utf-8", "replace"))


class SignatureVerifier:
    """Verifier bound to the configured webhook secret(s).

    With a single secret the header's salt index is carried but not checked.
    Several secrets are keyed by salt index so a rotated key can be accepted
    next to the current one; a header naming an unknown index is then rejected.
    """

    def __init__(self, secret: Optional[str] = None, salt_index: str = "1", *, secrets: Optional[Mapping[str, str]] = None):
        keyed = dict(secrets or {})
        if secret:
            keyed.setdefault(str(salt_index), secret)
        keyed = {str(k): v for k, v in keyed.items() if v}
        if not keyed:
            raise ConfigError("Webhook secret is not configured (PHONEPE__WEBHOOK_SECRET)")
        self._secrets = keyed
        self.salt_index = str(salt_index)

    def verify(self, encoded_payload: BytesLike, signature_header: Optional[str]) -> bool:
        parts = split_header(signature_header)
        if parts is None:
            return False
        if len(self._secrets) == 1:
            secret = next(iter(self._secrets.values()))
        else:
            secret = self._secrets.get(parts[1])
        if secret is None:
            return False
        return verify(encoded_payload, signature_header, secret)

    def sign(self, encoded_payload: BytesLike, salt_index: Optional[str] = None) -> str:
        index = str(salt_index or self.salt_index)
        if index not in self._secrets:
            raise ConfigError(f"No webhook secret for salt index {index}")
        return sign(encoded_payload, self._secrets[index], index)

    def decode(self, encoded_payload: BytesLike) -> WebhookNotification:
        """Decode a verified base64 payload into a notification.

        Raises SignatureMismatchError when the payload is not base64 JSON: a
        correctly signed body that cannot be read is treated as untrusted.
        """
        try:
            payload = json.loads(base64.b64decode(_as_bytes(encoded_payload), validate=True))
        except (binascii.Error, ValueError) as exc:
            logger.warning("webhook_payload_undecodable", error=str(exc))
            raise SignatureMismatchError("Undecodable webhook payload") from exc
        if not isinstance(payload, dict):
            raise SignatureMismatchError("Undecodable webhook payload")

        status = normalize_status("", payload, source="webhook")
        return WebhookNotification(
            merchant_order_id=status.merchant_order_id or None,
            transaction_id=status.transaction_id,
            status=status.status,
            code=status.code,
            state=status.state,
            amount=extract_amount(payload),
            raw=payload,
        )
