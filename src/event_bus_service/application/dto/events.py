from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class DeliveredEvent:
    """An outbox event as received back from the broker."""

    event_id: UUID
    event_type: str
    topic: str
    payload: dict[str, Any]
    occurred_at: datetime
    partition_key: str | None = None
    correlation_id: str | None = None
