from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class OutboxEvent:
    id: UUID
    event_type: str
    payload: dict[str, Any]
    topic: str
    partition_key: str | None
    occurred_at: datetime
    correlation_id: str | None = None
    published: bool = False
    published_at: datetime | None = None
    publish_attempt_count: int = 0
    last_error_message: str | None = None
    retry_from_attempt: int = 0
    dead_lettered_at: datetime | None = None

    @property
    def attempts_in_budget(self) -> int:
        """Failed attempts since the row was created or last requeued."""
        return self.publish_attempt_count - self.retry_from_attempt

    @property
    def is_dead_lettered(self) -> bool:
        return self.dead_lettered_at is not None
