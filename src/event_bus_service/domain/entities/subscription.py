from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class EventSubscription:
    id: UUID
    service_name: str
    event_type: str
    webhook_url: str
    is_active: bool
    retry_count: int
    timeout_seconds: int
    created_at: datetime
    updated_at: datetime
    last_delivered_at: datetime | None = None
    last_failed_at: datetime | None = None
    failure_reason: str | None = None
    consecutive_failures: int = 0

    @property
    def target(self) -> tuple[str, str, str]:
        """Identity of the delivery target; unique across subscriptions."""
        return (self.service_name, self.event_type, self.webhook_url)
