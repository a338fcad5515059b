from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class OutboxStatsResponse(BaseModel):
    timestamp: datetime
    total_pending: int
    pending_by_type: dict[str, int]
    oldest_event_age_seconds: float
    dead_lettered: int


class OutboxEventResponse(BaseModel):
    id: UUID
    event_type: str
    topic: str
    partition_key: str | None = None
    occurred_at: datetime
    publish_attempt_count: int
    last_error_message: str | None = None
    dead_lettered_at: datetime | None = None


class OutboxEventDetailResponse(OutboxEventResponse):
    published: bool
    published_at: datetime | None = None
    correlation_id: str | None = None
    payload: dict[str, Any]
