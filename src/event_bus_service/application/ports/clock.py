from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of timezone-aware UTC timestamps.

    ``occurred_at`` values decide publish order within a partition key, so
    every timestamp the services persist comes from a Clock.
    """

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()
