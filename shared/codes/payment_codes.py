"""
Payment specific codes and gateway status vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    CONFIG_ERROR = 60000
    AUTH_ERROR = 60001
    NETWORK_ERROR = 60002
    GATEWAY_REJECTED = 60003
    SIGNATURE_MISMATCH = 60004
    STATE_CONFLICT = 60005
    ORDER_NOT_FOUND = 60006


# Gateway response codes (`code` field) grouped by the canonical outcome.
GATEWAY_SUCCESS_CODES = frozenset({
    "PAYMENT_SUCCESS",
    "TRANSACTION_COMPLETED",
})

GATEWAY_FAILURE_CODES = frozenset({
    "PAYMENT_ERROR",
    "PAYMENT_DECLINED",
    "PAYMENT_CANCELLED",
    "AUTHORIZATION_FAILED",
    "TRANSACTION_FAILED",
    "TIMED_OUT",
    "BAD_REQUEST",
})

GATEWAY_PENDING_CODES = frozenset({
    "PAYMENT_PENDING",
    "PAYMENT_INITIATED",
})

# Gateway order/transaction `state` field -> canonical status value.
GATEWAY_STATE_TO_INTERNAL = {
    "COMPLETED": "SUCCESS",
    "FAILED": "FAILED",
    "PENDING": "PENDING",
}
