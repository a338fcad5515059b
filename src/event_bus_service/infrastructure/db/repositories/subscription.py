from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from event_bus_service.application.dto.subscription import SubscriptionFilterDTO
from event_bus_service.application.exceptions import ConfigurationError
from event_bus_service.domain.entities.subscription import EventSubscription
from event_bus_service.infrastructure.db.mappers import subscription as mapper
from event_bus_service.infrastructure.db.models.subscription import EventSubscriptionModel


class SubscriptionReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, subscription_id: UUID) -> EventSubscription | None:
        model = await self._session.get(EventSubscriptionModel, subscription_id)
        return mapper.model_to_entity(model) if model else None

    async def find_by_target(
        self,
        service_name: str,
        event_type: str,
        webhook_url: str,
    ) -> EventSubscription | None:
        stmt = select(EventSubscriptionModel).where(
            EventSubscriptionModel.service_name == service_name,
            EventSubscriptionModel.event_type == event_type,
            EventSubscriptionModel.webhook_url == webhook_url,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list(self, filters: SubscriptionFilterDTO) -> list[EventSubscription]:
        stmt = select(EventSubscriptionModel)
        if filters.service_name is not None:
            stmt = stmt.where(EventSubscriptionModel.service_name == filters.service_name)
        if filters.event_type is not None:
            stmt = stmt.where(EventSubscriptionModel.event_type == filters.event_type)
        if filters.active_only:
            stmt = stmt.where(EventSubscriptionModel.is_active.is_(True))
        stmt = stmt.order_by(EventSubscriptionModel.created_at.asc()).limit(filters.limit)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_active_for_event_type(self, event_type: str) -> list[EventSubscription]:
        stmt = select(EventSubscriptionModel).where(
            EventSubscriptionModel.event_type == event_type,
            EventSubscriptionModel.is_active.is_(True),
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class SubscriptionWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, subscription: EventSubscription) -> None:
        self._session.add(mapper.entity_to_model(subscription))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ConfigurationError(
                "Subscription for this service, event type and webhook URL already exists"
            ) from exc

    async def set_active(self, subscription_id: UUID, active: bool) -> None:
        values: dict[str, object] = {"is_active": active}
        if active:
            values["consecutive_failures"] = 0
        stmt = (
            update(EventSubscriptionModel)
            .where(EventSubscriptionModel.id == subscription_id)
            .values(**values)
        )
        await self._session.execute(stmt)

    async def record_delivery_success(self, subscription_id: UUID, at: datetime) -> None:
        stmt = (
            update(EventSubscriptionModel)
            .where(EventSubscriptionModel.id == subscription_id)
            .values(last_delivered_at=at, failure_reason=None, consecutive_failures=0)
        )
        await self._session.execute(stmt)

    async def record_delivery_failure(
        self,
        subscription_id: UUID,
        at: datetime,
        reason: str,
    ) -> int:
        stmt = (
            update(EventSubscriptionModel)
            .where(EventSubscriptionModel.id == subscription_id)
            .values(
                last_failed_at=at,
                failure_reason=reason,
                consecutive_failures=EventSubscriptionModel.consecutive_failures + 1,
            )
            .returning(EventSubscriptionModel.consecutive_failures)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() or 0
