from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class PublishResult:
    """Counters for one publisher cycle."""

    published: int = 0
    failed: int = 0
    deferred: int = 0
    dead_lettered: int = 0

    @property
    def total_processed(self) -> int:
        return self.published + self.failed + self.deferred

    @property
    def is_success(self) -> bool:
        return self.failed == 0


@dataclass(frozen=True, slots=True)
class OutboxStats:
    total_pending: int
    pending_by_type: dict[str, int] = field(default_factory=dict)
    oldest_pending_at: datetime | None = None
    dead_lettered: int = 0
