"""Operator-facing queries over the outbox."""
from __future__ import annotations

import logging
import uuid

from event_bus_service.application.dto.outbox import OutboxStats
from event_bus_service.application.exceptions import ConflictError, NotFoundError
from event_bus_service.application.uow import UnitOfWork
from event_bus_service.domain.entities.outbox_event import OutboxEvent

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


async def get_outbox_stats(uow: UnitOfWork) -> OutboxStats:
    return await uow.outbox.stats()


async def list_pending_events(limit: int, uow: UnitOfWork) -> list[OutboxEvent]:
    return await uow.outbox.list_pending(min(limit, MAX_LIST_LIMIT))


async def list_dead_lettered(limit: int, uow: UnitOfWork) -> list[OutboxEvent]:
    return await uow.outbox.list_dead_lettered(min(limit, MAX_LIST_LIMIT))


async def get_outbox_event(event_id: uuid.UUID, uow: UnitOfWork) -> OutboxEvent:
    event = await uow.outbox.get_by_id(event_id)
    if event is None:
        raise NotFoundError(f"No event found with ID: {event_id}")
    return event


async def requeue_event(event_id: uuid.UUID, uow: UnitOfWork) -> OutboxEvent:
    """Give a dead-lettered row a fresh attempt budget."""
    event = await get_outbox_event(event_id, uow)
    if event.published:
        raise ConflictError("Event is already published")
    if not event.is_dead_lettered:
        raise ConflictError("Event is not dead-lettered")

    await uow.outbox.requeue(event_id)
    await uow.commit()
    logger.info(
        "Outbox event %s requeued after %d attempts",
        event_id, event.publish_attempt_count,
    )
    return await get_outbox_event(event_id, uow)
