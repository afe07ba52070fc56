"""
Payment repositories - SQLAlchemy implementations.
"""
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.entity import PaymentOrder, PaymentStatus, WebhookEvent, WebhookOutcome, utcnow
from domain.payment.exceptions import StateConflictError
from domain.payment.repository import PaymentOrderRepository, WebhookEventRepository
from infrastructure.models.payment import PaymentOrderModel, WebhookClaimModel, WebhookEventModel


logger = get_logger(__name__)


async def _insert_if_absent(session: AsyncSession, model, values: dict[str, Any], conflict_column: str) -> bool:
    """INSERT that reports a unique conflict as False without aborting the transaction."""
    # Keyed by Column so attribute names that differ from column names map correctly
    columns = model.__mapper__.columns
    row = {columns[key]: value for key, value in values.items()}
    table = model.__table__
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(row).on_conflict_do_nothing(index_elements=[columns[conflict_column]])
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(row).on_conflict_do_nothing(index_elements=[columns[conflict_column]])
    else:
        try:
            async with session.begin_nested():
                await session.execute(insert(table).values(row))
        except IntegrityError:
            return False
        return True
    result = await session.execute(stmt)
    return result.rowcount == 1


class SQLAlchemyPaymentOrderRepository(PaymentOrderRepository):
    """Payment order repository on SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: PaymentOrderModel) -> PaymentOrder:
        return PaymentOrder(
            id=model.id,
            merchant_order_id=model.merchant_order_id,
            amount=int(model.amount),
            currency=model.currency,
            status=PaymentStatus(model.status),
            gateway_transaction_id=model.gateway_transaction_id,
            gateway_order_id=model.gateway_order_id,
            redirect_url=model.redirect_url,
            failure_reason=model.failure_reason,
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
            last_updated_at=model.last_updated_at,
        )

    async def _load(self, merchant_order_id: str) -> Optional[PaymentOrderModel]:
        result = await self.session.execute(
            select(PaymentOrderModel)
            .where(PaymentOrderModel.merchant_order_id == merchant_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, order: PaymentOrder) -> PaymentOrder:
        inserted = await _insert_if_absent(
            self.session,
            PaymentOrderModel,
            {
                "merchant_order_id": order.merchant_order_id,
                "amount": order.amount,
                "currency": order.currency,
                "status": order.status.value,
                "gateway_transaction_id": order.gateway_transaction_id,
                "gateway_order_id": order.gateway_order_id,
                "redirect_url": order.redirect_url,
                "failure_reason": order.failure_reason,
                "extra_metadata": order.metadata or None,
                "created_at": order.created_at,
                "last_updated_at": order.last_updated_at,
            },
            "merchant_order_id",
        )
        if not inserted:
            logger.warning("payment_order_create_conflict", merchant_order_id=order.merchant_order_id)
            raise StateConflictError(
                f"Payment order already exists: {order.merchant_order_id}",
                details={"merchant_order_id": order.merchant_order_id},
            )
        model = await self._load(order.merchant_order_id)
        logger.info("payment_order_created", merchant_order_id=order.merchant_order_id, amount=order.amount)
        return self._to_entity(model)

    async def get_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentOrder]:
        model = await self._load(merchant_order_id)
        return self._to_entity(model) if model else None

    async def transition(
        self,
        merchant_order_id: str,
        target: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Optional[PaymentOrder]:
        target = PaymentStatus(target)
        if not target.is_terminal:
            return None
        values: dict[str, Any] = {
            "status": target.value,
            "failure_reason": None if target is PaymentStatus.SUCCESS else reason,
            "last_updated_at": at or utcnow(),
        }
        if transaction_id:
            values["gateway_transaction_id"] = transaction_id

        # Compare-and-set: only a PENDING row can move
        result = await self.session.execute(
            update(PaymentOrderModel)
            .where(
                PaymentOrderModel.merchant_order_id == merchant_order_id,
                PaymentOrderModel.status == PaymentStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        model = await self._load(merchant_order_id)
        return self._to_entity(model) if model else None

    async def record_checkout(
        self,
        merchant_order_id: str,
        *,
        gateway_order_id: Optional[str],
        redirect_url: Optional[str],
    ) -> None:
        await self.session.execute(
            update(PaymentOrderModel)
            .where(PaymentOrderModel.merchant_order_id == merchant_order_id)
            .values(gateway_order_id=gateway_order_id, redirect_url=redirect_url)
            .execution_options(synchronize_session=False)
        )

    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PaymentOrder]:
        result = await self.session.execute(
            select(PaymentOrderModel)
            .where(
                PaymentOrderModel.status == PaymentStatus.PENDING.value,
                PaymentOrderModel.last_updated_at < older_than,
            )
            .order_by(PaymentOrderModel.last_updated_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyWebhookEventRepository(WebhookEventRepository):
    """Webhook event log and dedupe claims on SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: WebhookEvent) -> WebhookEvent:
        model = WebhookEventModel(
            merchant_order_id=event.merchant_order_id,
            transaction_id=event.transaction_id,
            raw_payload=event.raw_payload,
            signature_header=event.signature_header or "",
            verified=event.verified,
            state=event.state.value if event.state else None,
            gateway_code=event.gateway_code,
            amount=event.amount,
            outcome=event.outcome.value if event.outcome else None,
            received_at=event.received_at,
            processed_at=event.processed_at,
        )
        self.session.add(model)
        await self.session.flush()
        event.id = model.id
        return event

    async def claim(self, dedupe_key: str, at: datetime) -> bool:
        return await _insert_if_absent(
            self.session,
            WebhookClaimModel,
            {"dedupe_key": dedupe_key, "claimed_at": at},
            "dedupe_key",
        )

    async def mark_outcome(self, event: WebhookEvent, outcome: WebhookOutcome, at: datetime) -> None:
        event.mark_processed(outcome, at)
        if event.id is None:
            return
        await self.session.execute(
            update(WebhookEventModel)
            .where(WebhookEventModel.id == event.id)
            .values(outcome=outcome.value, processed_at=event.processed_at)
            .execution_options(synchronize_session=False)
        )
