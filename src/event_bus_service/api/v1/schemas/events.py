from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class PublishEventRequest(BaseModel):
    event_type: str = Field(min_length=1, max_length=200)
    topic: str = Field(min_length=1, max_length=200)
    payload: dict[str, Any]
    partition_key: str | None = Field(default=None, max_length=200)
    correlation_id: str | None = Field(default=None, max_length=100)


class PublishEventResponse(BaseModel):
    event_id: UUID
    occurred_at: datetime
    correlation_id: str | None = None


class EventTypeInfo(BaseModel):
    event_type: str
    topic: str


class EventTypesResponse(BaseModel):
    event_types: list[EventTypeInfo]
    topics: list[str]
    total_count: int
    timestamp: datetime
