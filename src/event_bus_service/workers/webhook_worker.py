"""Webhook worker: consumes the bus streams and fans events out to subscribers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import redis.asyncio as aioredis

from event_bus_service.application.ports.webhook import WebhookSender
from event_bus_service.config import settings
from event_bus_service.infrastructure.bus.partitioner import topic_streams
from event_bus_service.infrastructure.bus.redis_streams import RedisStreamConsumer
from event_bus_service.infrastructure.bus.serializer import decode_stream_fields
from event_bus_service.infrastructure.db.uow import sqlalchemy_uow
from event_bus_service.infrastructure.http.webhook_client import HttpxWebhookSender
from event_bus_service.services.webhook_dispatcher import RetryPolicy, dispatch_event
from event_bus_service.workers.signals import install_stop_handlers

logger = logging.getLogger(__name__)


def all_streams() -> list[str]:
    streams: list[str] = []
    for topic in settings.BROKER_TOPICS:
        streams.extend(
            topic_streams(settings.BROKER_STREAM_PREFIX, topic, settings.BROKER_PARTITIONS)
        )
    return streams


def make_handler(sender: WebhookSender):
    retry_policy = RetryPolicy(
        base_delay=settings.WEBHOOK_BACKOFF_BASE,
        max_delay=settings.WEBHOOK_BACKOFF_MAX,
    )

    async def _handle(stream: str, fields: dict[str, Any]) -> None:
        try:
            event = decode_stream_fields(fields)
        except (KeyError, ValueError):
            # Acked and dropped: a malformed entry would otherwise be replayed forever.
            logger.error("Malformed bus entry on %s: %r", stream, fields)
            return
        await dispatch_event(
            event,
            sqlalchemy_uow,
            sender,
            max_concurrency=settings.WEBHOOK_MAX_CONCURRENCY,
            retry_policy=retry_policy,
            deactivate_after=settings.WEBHOOK_DEACTIVATE_AFTER_FAILURES,
        )

    return _handle


async def run_webhook_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    sender = HttpxWebhookSender.create(
        settings.WEBHOOK_MAX_CONCURRENCY,
        user_agent=settings.WEBHOOK_USER_AGENT,
    )
    consumer = RedisStreamConsumer(
        redis=redis,
        streams=all_streams(),
        group=settings.BROKER_CONSUMER_GROUP,
        consumer=settings.BROKER_CONSUMER_NAME,
        callback=make_handler(sender),
        pending_retry_delay=settings.BROKER_PENDING_RETRY_DELAY,
    )

    stopping = asyncio.Event()
    install_stop_handlers(stopping.set)
    await consumer.start()
    logger.info(
        "Webhook worker started (%s, concurrency=%d)",
        settings.BROKER_CONSUMER_NAME,
        settings.WEBHOOK_MAX_CONCURRENCY,
    )

    stop_requested = asyncio.create_task(stopping.wait())
    try:
        assert consumer.task is not None
        await asyncio.wait({stop_requested, consumer.task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_requested.cancel()
        await consumer.stop(settings.SHUTDOWN_GRACE_SECONDS)
        await sender.aclose()
        await redis.aclose()
        logger.info("Webhook worker stopped")


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_webhook_worker())


if __name__ == "__main__":
    main()
