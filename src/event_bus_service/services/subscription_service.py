from __future__ import annotations

import logging
import uuid

from event_bus_service.application.dto.subscription import (
    NewSubscriptionDTO,
    SubscriptionFilterDTO,
)
from event_bus_service.application.exceptions import (
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from event_bus_service.application.ports.clock import Clock, system_clock
from event_bus_service.application.uow import UnitOfWork
from event_bus_service.domain.entities.subscription import EventSubscription

logger = logging.getLogger(__name__)


async def register_subscription(
    data: NewSubscriptionDTO,
    uow: UnitOfWork,
    clock: Clock = system_clock,
) -> EventSubscription:
    """Create a subscription; an existing identical target is a configuration error."""
    if data.retry_count < 0:
        raise ValidationError("retry_count must be >= 0")
    if data.timeout_seconds <= 0:
        raise ValidationError("timeout_seconds must be > 0")

    existing = await uow.subscriptions.find_by_target(
        data.service_name, data.event_type, data.webhook_url,
    )
    if existing is not None:
        raise ConfigurationError(
            f"Subscription {existing.id} already delivers {data.event_type} "
            f"for {data.service_name} to {data.webhook_url}"
        )

    now = clock.now()
    subscription = EventSubscription(
        id=uuid.uuid4(),
        service_name=data.service_name,
        event_type=data.event_type,
        webhook_url=data.webhook_url,
        is_active=True,
        retry_count=data.retry_count,
        timeout_seconds=data.timeout_seconds,
        created_at=now,
        updated_at=now,
    )
    await uow.subscriptions_w.add(subscription)
    await uow.commit()
    logger.info(
        "Subscription %s registered: %s -> %s (%s)",
        subscription.id, data.event_type, data.webhook_url, data.service_name,
    )
    return subscription


async def list_subscriptions(
    filters: SubscriptionFilterDTO,
    uow: UnitOfWork,
) -> list[EventSubscription]:
    return await uow.subscriptions.list(filters)


async def get_subscription(
    subscription_id: uuid.UUID,
    uow: UnitOfWork,
) -> EventSubscription:
    subscription = await uow.subscriptions.get_by_id(subscription_id)
    if subscription is None:
        raise NotFoundError("Subscription not found")
    return subscription


async def deactivate_subscription(
    subscription_id: uuid.UUID,
    uow: UnitOfWork,
) -> EventSubscription:
    subscription = await get_subscription(subscription_id, uow)
    if subscription.is_active:
        await uow.subscriptions_w.set_active(subscription_id, False)
        await uow.commit()
        logger.info("Subscription %s deactivated", subscription_id)
    return await get_subscription(subscription_id, uow)


async def activate_subscription(
    subscription_id: uuid.UUID,
    uow: UnitOfWork,
) -> EventSubscription:
    await get_subscription(subscription_id, uow)
    await uow.subscriptions_w.set_active(subscription_id, True)
    await uow.commit()
    logger.info("Subscription %s activated", subscription_id)
    return await get_subscription(subscription_id, uow)
