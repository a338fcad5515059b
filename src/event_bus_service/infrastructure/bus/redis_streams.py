"""Redis Streams as a partitioned broker: publish side + consumer-group reader."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from event_bus_service.application.exceptions import TransientTransportError
from event_bus_service.infrastructure.bus.partitioner import Partitioner, stream_name
from event_bus_service.infrastructure.bus.serializer import encode_stream_fields

logger = logging.getLogger(__name__)


class RedisStreamBroker:
    """Implements application.ports.bus.EventBroker.

    A topic is split into ``partitioner.partitions`` streams; all messages
    sharing a key land on the same stream and keep their relative order.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        partitioner: Partitioner,
        *,
        prefix: str = "",
        timeout: float = 5.0,
        maxlen: int | None = None,
    ) -> None:
        self._redis = redis
        self._partitioner = partitioner
        self._prefix = prefix
        self._timeout = timeout
        self._maxlen = maxlen

    async def publish(
        self,
        topic: str,
        key: str | None,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> None:
        stream = stream_name(self._prefix, topic, self._partitioner.partition_for(key))
        fields = encode_stream_fields(topic, key, payload, headers)
        try:
            await asyncio.wait_for(
                self._redis.xadd(stream, fields, maxlen=self._maxlen, approximate=True),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, RedisError, OSError) as exc:
            raise TransientTransportError(f"Publish to {stream} failed: {exc!r}") from exc


OnStreamEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisStreamConsumer:
    """XREADGROUP-based consumer over a set of streams sharing one group.

    Entries are acked only after the callback returns; on start the consumer
    first replays its own unacknowledged entries. An entry whose callback
    fails stays pending and is replayed again after ``pending_retry_delay``.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        streams: list[str],
        group: str,
        consumer: str,
        callback: OnStreamEventCallback,
        *,
        batch_size: int = 10,
        block_ms: int = 5000,
        pending_retry_delay: float = 5.0,
    ) -> None:
        self._redis = redis
        self._streams = streams
        self._group = group
        self._consumer = consumer
        self._callback = callback
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._pending_retry_delay = pending_retry_delay
        self._replay_due: float | None = None
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    async def ensure_groups(self) -> None:
        for stream in self._streams:
            try:
                # id=0: entries published before the group existed are delivered too.
                await self._redis.xgroup_create(stream, self._group, id="0", mkstream=True)
                logger.info("Created consumer group %s on %s", self._group, stream)
            except aioredis.ResponseError as e:
                if "BUSYGROUP" in str(e):
                    logger.debug("Consumer group %s already exists on %s", self._group, stream)
                else:
                    raise

    async def start(self) -> None:
        await self.ensure_groups()
        self._stopping.clear()
        self._task = asyncio.create_task(self._consume(), name="redis-stream-consumer")
        logger.info(
            "Stream consumer started: streams=%d group=%s consumer=%s",
            len(self._streams), self._group, self._consumer,
        )

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    async def stop(self, grace: float = 0.0) -> None:
        """Stop reading; let the in-flight batch finish for up to ``grace`` seconds."""
        self._stopping.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Stream consumer did not finish within %.1fs, cancelling", grace)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Stream consumer stopped")

    async def _consume(self) -> None:
        await self._replay_pending()
        while not self._stopping.is_set():
            try:
                if self._replay_due is not None and asyncio.get_running_loop().time() >= self._replay_due:
                    self._replay_due = None
                    await self._replay_pending()
                entries = await self._redis.xreadgroup(
                    groupname=self._group,
                    consumername=self._consumer,
                    streams={s: ">" for s in self._streams},
                    count=self._batch_size,
                    block=self._block_ms,
                )
                for stream, messages in entries or []:
                    for msg_id, fields in messages:
                        await self._handle(stream, msg_id, fields)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Stream consumer error, retrying in 5s")
                await asyncio.sleep(5)

    async def _replay_pending(self) -> None:
        cursors = {s: "0" for s in self._streams}
        while cursors and not self._stopping.is_set():
            entries = await self._redis.xreadgroup(
                groupname=self._group,
                consumername=self._consumer,
                streams=cursors,
                count=self._batch_size,
            )
            returned = {stream: messages for stream, messages in entries or []}
            for stream in list(cursors):
                messages = returned.get(stream)
                if not messages:
                    del cursors[stream]
                    continue
                for msg_id, fields in messages:
                    cursors[stream] = msg_id
                    await self._handle(stream, msg_id, fields)

    async def _handle(self, stream: str, msg_id: str, fields: dict[str, Any] | None) -> None:
        if not fields:
            # Trimmed from the stream while still pending.
            await self._redis.xack(stream, self._group, msg_id)
            return
        try:
            await self._callback(stream, fields)
        except Exception:
            logger.exception("Error processing stream message %s from %s", msg_id, stream)
            if self._replay_due is None:
                self._replay_due = asyncio.get_running_loop().time() + self._pending_retry_delay
            return
        await self._redis.xack(stream, self._group, msg_id)
