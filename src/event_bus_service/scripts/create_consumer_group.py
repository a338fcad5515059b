"""One-time script: create the webhook consumer group on every bus partition stream."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from event_bus_service.config import settings
from event_bus_service.workers.webhook_worker import all_streams

logger = logging.getLogger(__name__)


async def create_groups() -> None:
    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        for stream in all_streams():
            try:
                await r.xgroup_create(
                    stream,
                    settings.BROKER_CONSUMER_GROUP,
                    id="0",
                    mkstream=True,
                )
                logger.info(
                    "Created consumer group '%s' on stream '%s'",
                    settings.BROKER_CONSUMER_GROUP,
                    stream,
                )
            except aioredis.ResponseError as e:
                if "BUSYGROUP" in str(e):
                    logger.info("Consumer group already exists on '%s'", stream)
                else:
                    raise
    finally:
        await r.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_groups())


if __name__ == "__main__":
    main()
