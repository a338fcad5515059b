from __future__ import annotations

from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Self

from sqlalchemy.ext.asyncio import AsyncSession

from event_bus_service.infrastructure.db.repositories.outbox import OutboxRepo
from event_bus_service.infrastructure.db.repositories.subscription import (
    SubscriptionReaderRepo,
    SubscriptionWriterRepo,
)
from event_bus_service.infrastructure.db.session import AsyncSessionLocal


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.outbox = OutboxRepo(session)
        self.subscriptions = SubscriptionReaderRepo(session)
        self.subscriptions_w = SubscriptionWriterRepo(session)

    @property
    def session(self) -> AsyncSession:
        """Exposed so business code can share the outbox transaction."""
        return self._session

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


@asynccontextmanager
async def sqlalchemy_uow() -> AsyncIterator[SqlAlchemyUoW]:
    """Fresh session per unit of work; uncommitted changes are rolled back on exit."""
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow
