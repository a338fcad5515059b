from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, Field


class CreateSubscriptionRequest(BaseModel):
    service_name: str = Field(min_length=1, max_length=200)
    event_type: str = Field(min_length=1, max_length=200)
    webhook_url: AnyHttpUrl
    retry_count: int = Field(default=3, ge=0, le=20)
    timeout_seconds: int = Field(default=30, ge=1, le=300)


class SubscriptionResponse(BaseModel):
    id: UUID
    service_name: str
    event_type: str
    webhook_url: str
    is_active: bool
    retry_count: int
    timeout_seconds: int
    last_delivered_at: datetime | None = None
    last_failed_at: datetime | None = None
    failure_reason: str | None = None
    consecutive_failures: int = 0
    created_at: datetime
