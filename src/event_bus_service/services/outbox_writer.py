from __future__ import annotations

import logging
import uuid
from typing import Any

from event_bus_service.application.exceptions import PersistenceError, ValidationError
from event_bus_service.application.ports.clock import Clock, system_clock
from event_bus_service.application.repositories.outbox import OutboxWriter
from event_bus_service.application.uow import UnitOfWork
from event_bus_service.domain.entities.outbox_event import OutboxEvent

logger = logging.getLogger(__name__)


async def append(
    outbox: OutboxWriter,
    event_type: str,
    payload: dict[str, Any],
    topic: str,
    partition_key: str | None = None,
    *,
    correlation_id: str | None = None,
    clock: Clock = system_clock,
) -> OutboxEvent:
    """Record an event inside the caller's open transaction.

    Nothing is committed here: the row becomes durable together with the
    business change when the caller commits, and disappears with it on
    rollback. A store failure surfaces as PersistenceError and the caller
    must roll back.
    """
    if not event_type:
        raise ValidationError("event_type is required")
    if not topic:
        raise ValidationError("topic is required")
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    event = OutboxEvent(
        id=uuid.uuid4(),
        event_type=event_type,
        payload=payload,
        topic=topic,
        partition_key=partition_key or None,
        occurred_at=clock.now(),
        correlation_id=correlation_id,
    )
    await outbox.add(event)
    logger.debug(
        "Outbox event %s appended (type=%s topic=%s key=%s)",
        event.id, event_type, topic, event.partition_key,
    )
    return event


async def record_event(
    uow: UnitOfWork,
    event_type: str,
    payload: dict[str, Any],
    topic: str,
    partition_key: str | None = None,
    *,
    correlation_id: str | None = None,
    clock: Clock = system_clock,
) -> OutboxEvent:
    """Append in a transaction of its own, for producers that hand events over via the API."""
    try:
        event = await append(
            uow.outbox,
            event_type,
            payload,
            topic,
            partition_key,
            correlation_id=correlation_id,
            clock=clock,
        )
    except PersistenceError:
        await uow.rollback()
        raise
    await uow.commit()
    logger.info("Outbox event %s recorded (type=%s topic=%s)", event.id, event_type, topic)
    return event
