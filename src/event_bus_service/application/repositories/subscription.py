from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from event_bus_service.application.dto.subscription import SubscriptionFilterDTO
from event_bus_service.domain.entities.subscription import EventSubscription


class SubscriptionReader(Protocol):
    async def get_by_id(self, subscription_id: UUID) -> EventSubscription | None: ...

    async def find_by_target(
        self,
        service_name: str,
        event_type: str,
        webhook_url: str,
    ) -> EventSubscription | None: ...

    async def list(self, filters: SubscriptionFilterDTO) -> list[EventSubscription]: ...

    async def list_active_for_event_type(self, event_type: str) -> list[EventSubscription]: ...


class SubscriptionWriter(Protocol):
    async def add(self, subscription: EventSubscription) -> None: ...

    async def set_active(self, subscription_id: UUID, active: bool) -> None: ...

    async def record_delivery_success(self, subscription_id: UUID, at: datetime) -> None: ...

    async def record_delivery_failure(
        self,
        subscription_id: UUID,
        at: datetime,
        reason: str,
    ) -> int:
        """Store the failure and return the new consecutive failure count."""
        ...
