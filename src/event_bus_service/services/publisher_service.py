"""One publisher cycle: drain claimed outbox rows to the broker."""
from __future__ import annotations

import logging

from event_bus_service.application.dto.outbox import PublishResult
from event_bus_service.application.ports.bus import EventBroker
from event_bus_service.application.ports.clock import Clock, system_clock
from event_bus_service.application.uow import UnitOfWork
from event_bus_service.domain.entities.outbox_event import OutboxEvent

logger = logging.getLogger(__name__)


def broker_headers(event: OutboxEvent) -> dict[str, str]:
    headers = {
        "event_id": str(event.id),
        "event_type": event.event_type,
        "occurred_at": event.occurred_at.isoformat(),
    }
    if event.correlation_id:
        headers["correlation_id"] = event.correlation_id
    return headers


async def publish_pending(
    uow: UnitOfWork,
    broker: EventBroker,
    *,
    batch_size: int,
    max_attempts: int = 0,
    clock: Clock = system_clock,
) -> PublishResult:
    """Publish one batch and commit the bookkeeping.

    Per-row broker failures are recorded on the row and never abort the
    cycle. Once a row of a partition key fails, the remaining rows of that
    key are deferred to a later cycle so a key is always published in
    ``occurred_at`` order. Errors from the store itself propagate; nothing
    is committed then and every claimed row is retried next cycle.
    """
    result = PublishResult()
    batch = await uow.outbox.claim_pending(batch_size)
    if not batch:
        return result

    blocked_keys: set[str] = set()
    for event in batch:
        if event.partition_key is not None and event.partition_key in blocked_keys:
            result.deferred += 1
            continue

        try:
            await broker.publish(
                event.topic,
                event.partition_key,
                event.payload,
                broker_headers(event),
            )
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or exc.__class__.__name__
            dead_lettered_at = None
            if max_attempts > 0 and event.attempts_in_budget + 1 >= max_attempts:
                dead_lettered_at = clock.now()
                result.dead_lettered += 1
                logger.error(
                    "Outbox event %s dead-lettered after %d attempts: %s",
                    event.id, event.publish_attempt_count + 1, error,
                )
            else:
                logger.warning(
                    "Failed to publish outbox event %s (attempt %d): %s",
                    event.id, event.publish_attempt_count + 1, error,
                )
            await uow.outbox.record_failure(event.id, error, dead_lettered_at)
            if event.partition_key is not None:
                blocked_keys.add(event.partition_key)
            result.failed += 1
            continue

        await uow.outbox.mark_published(event.id, clock.now())
        result.published += 1

    await uow.commit()
    if result.published or result.failed:
        logger.info(
            "Outbox cycle: published=%d failed=%d deferred=%d dead_lettered=%d",
            result.published, result.failed, result.deferred, result.dead_lettered,
        )
    return result
