"""
Application service driving payment orders through their lifecycle.

Depends only on the application ports, the domain repositories (through a
unit of work) and DTOs. Gateway implementations are injected from the
composition root (API lifespan, Celery worker), keeping dependencies one-way.

Network calls are never made while a unit of work is open: state is read,
the gateway is called, then state is written in a fresh unit.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from tenacity import AsyncRetrying, before_sleep_log, retry_if_result, stop_after_attempt, wait_exponential

from application.dtos.payments import CheckoutSession, GatewayStatus, WebhookResult
from application.ports.payment_gateway import CheckoutGateway, StatusGateway, WebhookAuthenticator
from core.logging_config import get_logger
from core.settings import PaymentRetry
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import (
    PaymentOrder,
    PaymentStatus,
    WebhookEvent,
    WebhookOutcome,
    to_minor_units,
    utcnow,
)
from domain.payment.events import PaymentEvent, event_for
from domain.payment.exceptions import (
    GatewayRejectedError,
    PaymentOrderNotFoundError,
    SignatureMismatchError,
    StateConflictError,
)


logger = get_logger(__name__)

Listener = Callable[[PaymentEvent], Awaitable[None]]
UnitOfWorkFactory = Callable[[], AbstractUnitOfWork]


def generate_merchant_order_id() -> str:
    return f"ORDER_{uuid.uuid4().hex[:8]}_{int(time.time() * 1000)}"


def extract_encoded_payload(raw_body: bytes) -> bytes:
    """The signed part of a webhook body: the ``response`` field of the JSON envelope.

    Bodies that are not an envelope are returned stripped, as received; they
    will simply fail verification.
    """
    try:
        envelope = json.loads(raw_body)
    except (ValueError, RecursionError):
        return raw_body.strip()
    if isinstance(envelope, dict) and isinstance(envelope.get("response"), str):
        return envelope["response"].encode("utf-8")
    return raw_body.strip()


def _poll_needs_retry(result: GatewayStatus) -> bool:
    return result.status is PaymentStatus.ERROR and result.retryable


class PaymentOrchestrator:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        checkout: CheckoutGateway,
        status: StatusGateway,
        authenticator: WebhookAuthenticator,
        *,
        retry: Optional[PaymentRetry] = None,
        reconciliation_window: timedelta = timedelta(seconds=300),
        listeners: Sequence[Listener] = (),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.checkout = checkout
        self.status = status
        self.authenticator = authenticator
        self._retry = retry or PaymentRetry()
        self.reconciliation_window = reconciliation_window
        self._listeners: List[Listener] = list(listeners)
        self._clock = clock

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # ---- checkout ----

    async def start_checkout(
        self,
        amount: Union[Decimal, int, float, str],
        redirect_url: str,
        merchant_order_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> CheckoutSession:
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise DomainValidationException("amount must be greater than zero", field="amount")
        if not redirect_url:
            raise DomainValidationException("redirect_url is required", field="redirect_url")
        merchant_order_id = merchant_order_id or generate_merchant_order_id()

        created = False
        async with self._uow_factory() as uow:
            existing = await uow.payment_orders.get_by_merchant_order_id(merchant_order_id)
            if existing is None:
                await uow.payment_orders.create(
                    PaymentOrder(
                        merchant_order_id=merchant_order_id,
                        amount=amount_minor,
                        metadata=dict(metadata or {}),
                        created_at=self._clock(),
                    )
                )
                created = True
            elif existing.status is not PaymentStatus.PENDING or existing.amount != amount_minor:
                raise StateConflictError(
                    f"Payment order {merchant_order_id} already exists with a different amount or a final status",
                    details={"merchant_order_id": merchant_order_id, "status": existing.status.value},
                )
            elif existing.redirect_url:
                # The gateway already issued a pay page for this order; hand it out again
                logger.info("payment_checkout_session_reused", merchant_order_id=merchant_order_id)
                return CheckoutSession(
                    merchant_order_id=merchant_order_id,
                    redirect_url=existing.redirect_url,
                    amount=existing.amount,
                    gateway_order_id=existing.gateway_order_id,
                    state=existing.status.value,
                )
            else:
                logger.info("payment_checkout_reused_order", merchant_order_id=merchant_order_id)

        try:
            session = await self.checkout.initiate(merchant_order_id, amount_minor, redirect_url)
        except GatewayRejectedError as exc:
            logger.warning(
                "payment_checkout_rejected",
                merchant_order_id=merchant_order_id,
                gateway_code=exc.gateway_code,
                error=exc.message,
                created=created,
            )
            # A retried order may already be in flight at the gateway; only reconciliation may settle it
            if created:
                await self._apply(merchant_order_id, PaymentStatus.FAILED, reason=exc.message, source="checkout")
            raise
        # NetworkError / AuthError leave the order PENDING for retry or reconciliation

        async with self._uow_factory() as uow:
            await uow.payment_orders.record_checkout(
                merchant_order_id,
                gateway_order_id=session.gateway_order_id,
                redirect_url=session.redirect_url,
            )
        logger.info(
            "payment_checkout_initiated",
            merchant_order_id=merchant_order_id,
            amount=amount_minor,
            gateway_order_id=session.gateway_order_id,
        )
        return session

    # ---- webhooks ----

    async def handle_webhook(self, raw_body: bytes, x_verify: Optional[str]) -> WebhookResult:
        encoded = extract_encoded_payload(raw_body)
        received_at = self._clock()

        if not self.authenticator.verify(encoded, x_verify):
            logger.warning("webhook_signature_rejected", body_length=len(raw_body), has_header=bool(x_verify))
            async with self._uow_factory() as uow:
                await uow.webhook_events.add(
                    WebhookEvent(
                        raw_payload=encoded,
                        signature_header=x_verify or "",
                        verified=False,
                        received_at=received_at,
                    )
                )
            raise SignatureMismatchError()

        notification = self.authenticator.decode(encoded)
        event = WebhookEvent(
            raw_payload=encoded,
            signature_header=x_verify or "",
            verified=True,
            merchant_order_id=notification.merchant_order_id,
            transaction_id=notification.transaction_id,
            state=notification.status,
            gateway_code=notification.code,
            amount=notification.amount,
            received_at=received_at,
        )
        target = notification.status
        applied: Optional[PaymentOrder] = None

        async with self._uow_factory() as uow:
            await uow.webhook_events.add(event)
            order = (
                await uow.payment_orders.get_by_merchant_order_id(event.merchant_order_id)
                if event.merchant_order_id
                else None
            )
            if order is None:
                outcome = WebhookOutcome.UNKNOWN_ORDER
            elif target not in (PaymentStatus.SUCCESS, PaymentStatus.FAILED):
                # PENDING or unrecognized vocabulary: nothing to apply, key stays unclaimed
                outcome = WebhookOutcome.IGNORED
            elif not await uow.webhook_events.claim(event.dedupe_key, received_at):
                outcome = WebhookOutcome.DUPLICATE
            elif order.is_final_status():
                outcome = WebhookOutcome.STALE
            else:
                if event.amount is not None and event.amount != order.amount:
                    logger.warning(
                        "webhook_amount_mismatch",
                        merchant_order_id=order.merchant_order_id,
                        expected=order.amount,
                        received=event.amount,
                    )
                applied = await uow.payment_orders.transition(
                    order.merchant_order_id,
                    target,
                    transaction_id=event.transaction_id,
                    reason=None if target is PaymentStatus.SUCCESS else (notification.code or "Payment failed"),
                    at=received_at,
                )
                outcome = WebhookOutcome.APPLIED if applied else WebhookOutcome.STALE
            await uow.webhook_events.mark_outcome(event, outcome, self._clock())

        logger.info(
            "webhook_processed",
            merchant_order_id=event.merchant_order_id,
            transaction_id=event.transaction_id,
            status=target.value,
            outcome=outcome.value,
        )
        if applied is not None:
            await self._emit(event_for(applied, source="webhook"))
        return WebhookResult(
            outcome=outcome,
            merchant_order_id=event.merchant_order_id,
            transaction_id=event.transaction_id,
            status=target,
        )

    # ---- polling ----

    async def _poll(self, merchant_order_id: str) -> GatewayStatus:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._retry.attempts)),
            wait=wait_exponential(multiplier=self._retry.base_backoff, max=self._retry.max_backoff),
            retry=retry_if_result(_poll_needs_retry),
            # Out of attempts: hand back the last ERROR instead of raising RetryError
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        return await retrying(self.status.check_status, merchant_order_id)

    async def reconcile(self, merchant_order_id: str) -> PaymentOrder:
        """Poll the gateway and apply a terminal answer to a PENDING order."""
        async with self._uow_factory() as uow:
            order = await uow.payment_orders.get_by_merchant_order_id(merchant_order_id)
        if order is None:
            raise PaymentOrderNotFoundError(merchant_order_id)
        if order.is_final_status():
            return order

        result = await self._poll(merchant_order_id)
        if result.status is PaymentStatus.PENDING or _poll_needs_retry(result):
            logger.info(
                "payment_reconcile_unresolved",
                merchant_order_id=merchant_order_id,
                status=result.status.value,
                retryable=result.retryable,
                message=result.message,
            )
            return order

        reason = None if result.status is PaymentStatus.SUCCESS else (result.message or result.code)
        updated = await self._apply(
            merchant_order_id,
            result.status,
            transaction_id=result.transaction_id,
            reason=reason,
            source="poll",
        )
        if updated is not None:
            return updated
        async with self._uow_factory() as uow:
            current = await uow.payment_orders.get_by_merchant_order_id(merchant_order_id)
        return current or order

    async def reconcile_pending(self, older_than: Optional[datetime] = None, limit: int = 100) -> List[PaymentOrder]:
        cutoff = older_than or (self._clock() - self.reconciliation_window)
        async with self._uow_factory() as uow:
            stale = await uow.payment_orders.list_stale_pending(cutoff, limit=limit)

        results: List[PaymentOrder] = []
        for order in stale:
            try:
                results.append(await self.reconcile(order.merchant_order_id))
            except PaymentOrderNotFoundError:
                continue
        resolved = sum(1 for o in results if o.is_final_status())
        logger.info(
            "payment_reconcile_batch_completed",
            candidates=len(stale),
            resolved=resolved,
            still_pending=len(results) - resolved,
        )
        return results

    async def get_order(self, merchant_order_id: str, refresh: bool = True) -> PaymentOrder:
        async with self._uow_factory() as uow:
            order = await uow.payment_orders.get_by_merchant_order_id(merchant_order_id)
        if order is None:
            raise PaymentOrderNotFoundError(merchant_order_id)
        if refresh and order.status is PaymentStatus.PENDING:
            return await self.reconcile(merchant_order_id)
        return order

    # ---- internals ----

    async def _apply(
        self,
        merchant_order_id: str,
        target: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
        source: str,
    ) -> Optional[PaymentOrder]:
        async with self._uow_factory() as uow:
            updated = await uow.payment_orders.transition(
                merchant_order_id,
                target,
                transaction_id=transaction_id,
                reason=reason,
                at=self._clock(),
            )
        if updated is None:
            logger.info("payment_transition_skipped", merchant_order_id=merchant_order_id, target=target.value, source=source)
            return None
        logger.info("payment_status_changed", merchant_order_id=merchant_order_id, status=target.value, source=source)
        await self._emit(event_for(updated, source=source))
        return updated

    async def _emit(self, event: PaymentEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception(
                    "payment_listener_failed",
                    merchant_order_id=event.merchant_order_id,
                    event_type=type(event).__name__,
                )
