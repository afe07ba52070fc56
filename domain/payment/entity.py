"""
Payment domain entities - PaymentOrder aggregate and inbound WebhookEvent.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Union

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """Canonical payment status. Everything but PENDING is terminal."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class WebhookOutcome(str, Enum):
    """What processing a webhook delivery did to state."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"  # non-terminal state carried, nothing to apply
    STALE = "stale"  # order already terminal
    UNKNOWN_ORDER = "unknown_order"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_minor_units(amount: Union[Decimal, int, float, str]) -> int:
    """Convert a major-unit amount (rupees) to minor units (paise).

    Rounds half-up to the nearest integer; floats go through ``str`` so that
    ``10.005`` is not turned into ``10.00499999...`` first.
    """
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = Decimal(amount)
    except ArithmeticError as exc:
        raise DomainValidationException(f"Invalid amount: {amount!r}", field="amount") from exc
    if not value.is_finite():
        raise DomainValidationException(f"Invalid amount: {amount!r}", field="amount")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class PaymentOrder:
    """
    Payment order aggregate.

    Business rules:
    1. merchant_order_id is non-empty and unique
    2. amount (minor units) must be > 0
    3. status only moves PENDING -> SUCCESS | FAILED | ERROR
    4. once terminal, status never changes again
    """

    merchant_order_id: str
    amount: int  # minor units (paise)
    status: PaymentStatus = PaymentStatus.PENDING
    currency: str = "INR"
    gateway_transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    redirect_url: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        if not self.merchant_order_id or not str(self.merchant_order_id).strip():
            raise DomainValidationException("merchant_order_id must not be empty", field="merchant_order_id")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise DomainValidationException(
                f"amount must be a positive integer in minor units: {self.amount!r}",
                field="amount",
            )
        self.status = PaymentStatus(self.status)
        now = utcnow()
        self.created_at = _ensure_utc(self.created_at) or now
        self.last_updated_at = _ensure_utc(self.last_updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}

    @property
    def amount_major(self) -> Decimal:
        return (Decimal(self.amount) / 100).quantize(Decimal("0.01"))

    def is_final_status(self) -> bool:
        return self.status.is_terminal

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return self.status is PaymentStatus.PENDING and PaymentStatus(target).is_terminal

    def apply_outcome(
        self,
        target: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        """Move to a terminal status. Returns False (and changes nothing) when not allowed."""
        target = PaymentStatus(target)
        if not self.can_transition_to(target):
            return False
        self.status = target
        if transaction_id:
            self.gateway_transaction_id = transaction_id
        self.failure_reason = None if target is PaymentStatus.SUCCESS else reason
        self.last_updated_at = _ensure_utc(at) or utcnow()
        return True


@dataclass
class WebhookEvent:
    """One received webhook delivery. Every delivery is recorded, duplicates included."""

    raw_payload: bytes
    signature_header: str
    verified: bool
    merchant_order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    state: Optional[PaymentStatus] = None
    gateway_code: Optional[str] = None
    amount: Optional[int] = None
    received_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    outcome: Optional[WebhookOutcome] = None
    id: Optional[int] = None

    def __post_init__(self):
        self.received_at = _ensure_utc(self.received_at) or utcnow()
        self.processed_at = _ensure_utc(self.processed_at)

    @property
    def dedupe_key(self) -> Optional[str]:
        """Gateway transaction id, or the merchant order id when the gateway sent none."""
        return self.transaction_id or self.merchant_order_id

    def mark_processed(self, outcome: WebhookOutcome, at: Optional[datetime] = None) -> None:
        self.outcome = outcome
        self.processed_at = _ensure_utc(at) or utcnow()
