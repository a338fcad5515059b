from __future__ import annotations

from event_bus_service.domain.entities.outbox_event import OutboxEvent
from event_bus_service.infrastructure.db.models.outbox import OutboxEventModel


def model_to_entity(model: OutboxEventModel) -> OutboxEvent:
    return OutboxEvent(
        id=model.id,
        event_type=model.event_type,
        payload=model.payload,
        topic=model.topic,
        partition_key=model.partition_key,
        occurred_at=model.occurred_at,
        correlation_id=model.correlation_id,
        published=model.published,
        published_at=model.published_at,
        publish_attempt_count=model.publish_attempt_count,
        last_error_message=model.last_error_message,
        retry_from_attempt=model.retry_from_attempt,
        dead_lettered_at=model.dead_lettered_at,
    )


def entity_to_model(entity: OutboxEvent) -> OutboxEventModel:
    return OutboxEventModel(
        id=entity.id,
        event_type=entity.event_type,
        payload=entity.payload,
        topic=entity.topic,
        partition_key=entity.partition_key,
        correlation_id=entity.correlation_id,
        occurred_at=entity.occurred_at,
        published=entity.published,
        published_at=entity.published_at,
        publish_attempt_count=entity.publish_attempt_count,
        last_error_message=entity.last_error_message,
        retry_from_attempt=entity.retry_from_attempt,
        dead_lettered_at=entity.dead_lettered_at,
    )
