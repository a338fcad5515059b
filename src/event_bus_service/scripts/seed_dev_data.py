"""Seed development data: creates the tables, sample subscriptions and one outbox event."""
from __future__ import annotations

import asyncio
import logging

from event_bus_service.application.dto.subscription import NewSubscriptionDTO
from event_bus_service.application.exceptions import ConfigurationError
from event_bus_service.infrastructure.db import models  # noqa: F401
from event_bus_service.infrastructure.db.base import Base
from event_bus_service.infrastructure.db.session import engine
from event_bus_service.infrastructure.db.uow import sqlalchemy_uow
from event_bus_service.services import outbox_writer, subscription_service

logger = logging.getLogger(__name__)

SAMPLE_SUBSCRIPTIONS = [
    NewSubscriptionDTO(
        service_name="user-service",
        event_type="UserRegistered",
        webhook_url="http://localhost:8081/webhooks/events",
    ),
    NewSubscriptionDTO(
        service_name="billing-service",
        event_type="UserRegistered",
        webhook_url="http://localhost:8082/webhooks/events",
        retry_count=5,
        timeout_seconds=10,
    ),
    NewSubscriptionDTO(
        service_name="admin-service",
        event_type="SubscriptionStarted",
        webhook_url="http://localhost:8083/webhooks/events",
    ),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables created")

    for data in SAMPLE_SUBSCRIPTIONS:
        async with sqlalchemy_uow() as uow:
            try:
                sub = await subscription_service.register_subscription(data, uow)
                logger.info("Subscription %s: %s -> %s", sub.id, data.event_type, data.webhook_url)
            except ConfigurationError:
                logger.info("Subscription %s -> %s already present", data.event_type, data.webhook_url)

    async with sqlalchemy_uow() as uow:
        event = await outbox_writer.record_event(
            uow,
            "UserRegistered",
            {"userId": "user-42", "email": "user42@example.com"},
            "user-events",
            "user-42",
        )
    logger.info("Outbox event %s recorded", event.id)

    await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
