"""Maps partition keys onto a fixed number of broker partitions."""
from __future__ import annotations

import itertools
import zlib


class Partitioner:
    """Stable hash for keyed messages, round-robin for unkeyed ones."""

    def __init__(self, partitions: int) -> None:
        if partitions < 1:
            raise ValueError("partitions must be >= 1")
        self.partitions = partitions
        self._round_robin = itertools.cycle(range(partitions))

    def partition_for(self, key: str | None) -> int:
        if key is None:
            return next(self._round_robin)
        # crc32 is stable across processes, unlike hash().
        return zlib.crc32(key.encode("utf-8")) % self.partitions


def stream_name(prefix: str, topic: str, partition: int) -> str:
    return f"{prefix}{topic}:{partition}"


def topic_streams(prefix: str, topic: str, partitions: int) -> list[str]:
    return [stream_name(prefix, topic, p) for p in range(partitions)]
