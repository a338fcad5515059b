from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from event_bus_service.application.repositories.outbox import OutboxStore
from event_bus_service.application.repositories.subscription import (
    SubscriptionReader,
    SubscriptionWriter,
)


class UnitOfWork(Protocol):
    outbox: OutboxStore
    subscriptions: SubscriptionReader
    subscriptions_w: SubscriptionWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
