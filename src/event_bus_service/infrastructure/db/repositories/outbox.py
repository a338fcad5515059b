from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from event_bus_service.application.dto.outbox import OutboxStats
from event_bus_service.application.exceptions import PersistenceError
from event_bus_service.domain.entities.outbox_event import OutboxEvent
from event_bus_service.infrastructure.db.mappers import outbox as mapper
from event_bus_service.infrastructure.db.models.outbox import OutboxEventModel

_PENDING = (
    OutboxEventModel.published.is_(False),
    OutboxEventModel.dead_lettered_at.is_(None),
)


def keep_lane_heads(
    claimed: list[OutboxEvent],
    heads: dict[str, tuple[datetime, UUID]],
) -> list[OutboxEvent]:
    """Drop keyed rows whose lane head is not part of ``claimed``.

    ``claimed`` is in ``(occurred_at, id)`` order and ``heads`` maps each
    partition key to the ``(occurred_at, id)`` of its oldest pending row.
    When another publisher holds the head locked, the whole lane is left to
    it so one key is never published by two instances out of order.
    """
    first_claimed: dict[str, tuple[datetime, UUID]] = {}
    for e in claimed:
        if e.partition_key is not None:
            first_claimed.setdefault(e.partition_key, (e.occurred_at, e.id))
    return [
        e for e in claimed
        if e.partition_key is None
        or first_claimed[e.partition_key] == heads.get(e.partition_key, first_claimed[e.partition_key])
    ]


class OutboxRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event: OutboxEvent) -> None:
        self._session.add(mapper.entity_to_model(event))
        try:
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Outbox insert failed: {exc}") from exc

    async def claim_pending(self, batch_size: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEventModel)
            .where(*_PENDING)
            .order_by(OutboxEventModel.occurred_at.asc(), OutboxEventModel.id.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await self._session.execute(stmt)
        claimed = [mapper.model_to_entity(m) for m in result.scalars().all()]

        keys = {e.partition_key for e in claimed if e.partition_key is not None}
        if not keys:
            return claimed
        # DISTINCT ON picks each key's oldest pending row, locked or not.
        heads_stmt = (
            select(OutboxEventModel.partition_key, OutboxEventModel.occurred_at, OutboxEventModel.id)
            .where(*_PENDING, OutboxEventModel.partition_key.in_(keys))
            .order_by(
                OutboxEventModel.partition_key,
                OutboxEventModel.occurred_at.asc(),
                OutboxEventModel.id.asc(),
            )
            .distinct(OutboxEventModel.partition_key)
        )
        heads = {
            key: (occurred_at, event_id)
            for key, occurred_at, event_id in (await self._session.execute(heads_stmt)).tuples()
        }
        return keep_lane_heads(claimed, heads)

    async def mark_published(self, event_id: UUID, published_at: datetime) -> None:
        stmt = (
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event_id, OutboxEventModel.published.is_(False))
            .values(published=True, published_at=published_at)
        )
        await self._session.execute(stmt)

    async def record_failure(
        self,
        event_id: UUID,
        error: str,
        dead_lettered_at: datetime | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "publish_attempt_count": OutboxEventModel.publish_attempt_count + 1,
            "last_error_message": error,
        }
        if dead_lettered_at is not None:
            values["dead_lettered_at"] = dead_lettered_at
        stmt = (
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event_id, OutboxEventModel.published.is_(False))
            .values(**values)
        )
        await self._session.execute(stmt)

    async def get_by_id(self, event_id: UUID) -> OutboxEvent | None:
        model = await self._session.get(OutboxEventModel, event_id)
        return mapper.model_to_entity(model) if model else None

    async def list_pending(self, limit: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEventModel)
            .where(*_PENDING)
            .order_by(OutboxEventModel.occurred_at.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_dead_lettered(self, limit: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEventModel)
            .where(
                OutboxEventModel.published.is_(False),
                OutboxEventModel.dead_lettered_at.is_not(None),
            )
            .order_by(OutboxEventModel.dead_lettered_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def requeue(self, event_id: UUID) -> None:
        stmt = (
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event_id, OutboxEventModel.published.is_(False))
            .values(
                retry_from_attempt=OutboxEventModel.publish_attempt_count,
                dead_lettered_at=None,
            )
        )
        await self._session.execute(stmt)

    async def stats(self) -> OutboxStats:
        by_type_stmt = (
            select(OutboxEventModel.event_type, func.count())
            .where(*_PENDING)
            .group_by(OutboxEventModel.event_type)
        )
        by_type = dict((await self._session.execute(by_type_stmt)).tuples().all())

        oldest = await self._session.scalar(
            select(func.min(OutboxEventModel.occurred_at)).where(*_PENDING)
        )
        dead = await self._session.scalar(
            select(func.count()).select_from(OutboxEventModel).where(
                OutboxEventModel.published.is_(False),
                OutboxEventModel.dead_lettered_at.is_not(None),
            )
        )
        return OutboxStats(
            total_pending=sum(by_type.values()),
            pending_by_type=by_type,
            oldest_pending_at=oldest,
            dead_lettered=dead or 0,
        )
