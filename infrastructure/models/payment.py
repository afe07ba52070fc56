"""
Payment ORM models - SQLAlchemy mappings.
Infrastructure detail only; the business rules live in domain.payment.entity.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, JSON, LargeBinary,
    Boolean, Index, CheckConstraint,
)
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentOrderModel(Base):
    """
    Payment order table.

    Status is only changed through a conditional UPDATE (status = 'PENDING'),
    which is what keeps transitions monotonic under concurrent writers.
    """
    __tablename__ = "payment_orders"

    id = Column(Integer, primary_key=True, index=True)

    merchant_order_id = Column(String(64), unique=True, index=True, nullable=False, comment="Merchant order id")
    amount = Column(BigInteger, nullable=False, comment="Amount in minor units (paise)")
    currency = Column(String(3), nullable=False, default="INR", comment="ISO-4217 currency code")

    status = Column(
        String(16),
        nullable=False,
        default="PENDING",
        index=True,
        comment="PENDING/SUCCESS/FAILED/ERROR",
    )

    gateway_transaction_id = Column(String(128), nullable=True, index=True, comment="Gateway transaction id")
    gateway_order_id = Column(String(128), nullable=True, comment="Gateway order id returned at checkout")
    redirect_url = Column(String(1024), nullable=True, comment="Checkout redirect target")
    failure_reason = Column(Text, nullable=True)

    # `metadata` is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True, comment="Caller supplied metadata")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    last_updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_payment_orders_status_updated", "status", "last_updated_at"),
        CheckConstraint("status IN ('PENDING', 'SUCCESS', 'FAILED', 'ERROR')", name="status"),
        CheckConstraint("amount > 0", name="amount_positive"),
    )

    def __repr__(self):
        return (
            f"<PaymentOrderModel(id={self.id}, merchant_order_id='{self.merchant_order_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class WebhookEventModel(Base):
    """Every webhook delivery, verified or not, duplicates included."""
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)

    merchant_order_id = Column(String(64), nullable=True, index=True)
    transaction_id = Column(String(128), nullable=True, index=True)
    raw_payload = Column(LargeBinary, nullable=False)
    signature_header = Column(String(256), nullable=False, default="")
    verified = Column(Boolean, nullable=False, default=False)
    state = Column(String(16), nullable=True, comment="Canonical status carried by the event")
    gateway_code = Column(String(64), nullable=True)
    amount = Column(BigInteger, nullable=True)
    outcome = Column(String(16), nullable=True, comment="applied/duplicate/ignored/stale/unknown_order")

    received_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (
            f"<WebhookEventModel(id={self.id}, merchant_order_id='{self.merchant_order_id}', "
            f"transaction_id='{self.transaction_id}', outcome='{self.outcome}')>"
        )


class WebhookClaimModel(Base):
    """Dedupe keys already applied. The primary key makes the claim atomic."""
    __tablename__ = "webhook_claims"

    dedupe_key = Column(String(128), primary_key=True)
    claimed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
