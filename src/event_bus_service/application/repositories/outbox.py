from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from event_bus_service.application.dto.outbox import OutboxStats
from event_bus_service.domain.entities.outbox_event import OutboxEvent


class OutboxWriter(Protocol):
    async def add(self, event: OutboxEvent) -> None: ...


class OutboxStore(OutboxWriter, Protocol):
    async def claim_pending(self, batch_size: int) -> list[OutboxEvent]:
        """Lock and return the oldest publishable rows.

        Rows come back ordered by (occurred_at, id). A row is only returned
        when no older unpublished row with the same partition key is left
        outside the claim.
        """
        ...

    async def mark_published(self, event_id: UUID, published_at: datetime) -> None: ...

    async def record_failure(
        self,
        event_id: UUID,
        error: str,
        dead_lettered_at: datetime | None = None,
    ) -> None: ...

    async def get_by_id(self, event_id: UUID) -> OutboxEvent | None: ...

    async def list_pending(self, limit: int) -> list[OutboxEvent]: ...

    async def list_dead_lettered(self, limit: int) -> list[OutboxEvent]: ...

    async def requeue(self, event_id: UUID) -> None: ...

    async def stats(self) -> OutboxStats: ...
