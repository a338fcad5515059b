from __future__ import annotations

from event_bus_service.domain.entities.subscription import EventSubscription
from event_bus_service.infrastructure.db.models.subscription import EventSubscriptionModel


def model_to_entity(model: EventSubscriptionModel) -> EventSubscription:
    return EventSubscription(
        id=model.id,
        service_name=model.service_name,
        event_type=model.event_type,
        webhook_url=model.webhook_url,
        is_active=model.is_active,
        retry_count=model.retry_count,
        timeout_seconds=model.timeout_seconds,
        created_at=model.created_at,
        updated_at=model.updated_at,
        last_delivered_at=model.last_delivered_at,
        last_failed_at=model.last_failed_at,
        failure_reason=model.failure_reason,
        consecutive_failures=model.consecutive_failures,
    )


def entity_to_model(entity: EventSubscription) -> EventSubscriptionModel:
    return EventSubscriptionModel(
        id=entity.id,
        service_name=entity.service_name,
        event_type=entity.event_type,
        webhook_url=entity.webhook_url,
        is_active=entity.is_active,
        retry_count=entity.retry_count,
        timeout_seconds=entity.timeout_seconds,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
        consecutive_failures=entity.consecutive_failures,
    )
