"""Outbox worker: polls unpublished outbox rows, publishes them to Redis Streams."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from event_bus_service.application.dto.outbox import PublishResult
from event_bus_service.application.ports.bus import EventBroker
from event_bus_service.application.ports.clock import Clock, system_clock
from event_bus_service.application.uow import UoWFactory
from event_bus_service.config import settings
from event_bus_service.infrastructure.bus.partitioner import Partitioner
from event_bus_service.infrastructure.bus.redis_streams import RedisStreamBroker
from event_bus_service.infrastructure.db.uow import sqlalchemy_uow
from event_bus_service.services.publisher_service import publish_pending
from event_bus_service.workers.signals import install_stop_handlers

logger = logging.getLogger(__name__)


class OutboxPublisherLoop:
    """Runs publisher cycles on a fixed interval until stopped.

    A cycle that raises is logged and followed by ``error_retry_delay``;
    nothing short of cancellation ends the loop.
    """

    def __init__(
        self,
        uow_factory: UoWFactory,
        broker: EventBroker,
        *,
        interval: float,
        batch_size: int,
        max_attempts: int = 0,
        startup_delay: float = 0.0,
        error_retry_delay: float = 5.0,
        clock: Clock | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._broker = broker
        self._interval = interval
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._startup_delay = startup_delay
        self._error_retry_delay = error_retry_delay
        self._clock = clock or system_clock
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    async def run_once(self) -> PublishResult:
        async with self._uow_factory() as uow:
            return await publish_pending(
                uow,
                self._broker,
                batch_size=self._batch_size,
                max_attempts=self._max_attempts,
                clock=self._clock,
            )

    async def run(self) -> None:
        if self._startup_delay and await self._sleep(self._startup_delay):
            return
        while not self._stopping.is_set():
            delay = self._interval
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Outbox worker loop error")
                delay = self._error_retry_delay
            if await self._sleep(delay):
                break

    def request_stop(self) -> None:
        self._stopping.set()

    async def start(self) -> None:
        self._stopping.clear()
        self._task = asyncio.create_task(self.run(), name="outbox-publisher")

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    async def stop(self, grace: float = 0.0) -> None:
        """Let the in-flight cycle finish for up to ``grace`` seconds, then cancel it.

        Rows of an abandoned cycle stay unpublished and are picked up again
        on the next start.
        """
        self.request_stop()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Outbox cycle did not finish within %.1fs, cancelling", grace)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _sleep(self, seconds: float) -> bool:
        """Timed wait; returns True when a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    broker = RedisStreamBroker(
        redis,
        Partitioner(settings.BROKER_PARTITIONS),
        prefix=settings.BROKER_STREAM_PREFIX,
        timeout=settings.BROKER_PUBLISH_TIMEOUT,
        maxlen=settings.BROKER_STREAM_MAXLEN or None,
    )
    publisher = OutboxPublisherLoop(
        sqlalchemy_uow,
        broker,
        interval=settings.OUTBOX_POLL_INTERVAL,
        batch_size=settings.OUTBOX_BATCH_SIZE,
        max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
        startup_delay=settings.OUTBOX_STARTUP_DELAY,
        error_retry_delay=settings.OUTBOX_ERROR_RETRY_DELAY,
    )

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d, partitions=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
        settings.BROKER_PARTITIONS,
    )

    stopping = asyncio.Event()
    install_stop_handlers(stopping.set)
    await publisher.start()
    stop_requested = asyncio.create_task(stopping.wait())
    try:
        assert publisher.task is not None
        await asyncio.wait({stop_requested, publisher.task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_requested.cancel()
        await publisher.stop(settings.SHUTDOWN_GRACE_SECONDS)
        await redis.aclose()
        logger.info("Outbox worker stopped")


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
