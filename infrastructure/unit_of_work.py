"""Unit of Work implementations: SQLAlchemy and in-memory."""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.inmemory_payment_repository import (
    InMemoryPaymentOrderRepository,
    InMemoryPaymentStore,
    InMemoryWebhookEventRepository,
)
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentOrderRepository,
    SQLAlchemyWebhookEventRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """One session, one transaction."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
    ) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.payment_orders = SQLAlchemyPaymentOrderRepository(self.session)
        self.webhook_events = SQLAlchemyWebhookEventRepository(self.session)
        self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # commit/rollback normally ends the transaction; close it if it is still open
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.payment_orders = None  # type: ignore[assignment]
            self.webhook_events = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Serializes units over a shared store; rollback restores the entry snapshot."""

    def __init__(self, store: InMemoryPaymentStore) -> None:
        super().__init__()
        self.store = store
        self._snapshot: Optional[tuple] = None

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.store.lock.acquire()
        self._snapshot = self.store.snapshot()
        self.payment_orders = InMemoryPaymentOrderRepository(self.store)
        self.webhook_events = InMemoryWebhookEventRepository(self.store)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            self._snapshot = None
            self.store.lock.release()

    async def commit(self) -> None:
        self._snapshot = self.store.snapshot()
        self._committed = True

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.store.restore(self._snapshot)
        self._committed = False
