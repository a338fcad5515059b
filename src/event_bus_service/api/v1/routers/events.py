from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from event_bus_service.api.deps import CurrentPrincipal, UoWDep
from event_bus_service.api.middleware.correlation_id import current_correlation_id
from event_bus_service.api.v1.schemas.events import (
    EventTypeInfo,
    EventTypesResponse,
    PublishEventRequest,
    PublishEventResponse,
)
from event_bus_service.config import settings
from event_bus_service.services import outbox_writer

router = APIRouter(prefix="/api/v1/events", tags=["events"])


@router.post("", response_model=PublishEventResponse, status_code=202)
async def publish_event(
    body: PublishEventRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> PublishEventResponse:
    """Store an event in the outbox; it is published asynchronously."""
    event = await outbox_writer.record_event(
        uow,
        body.event_type,
        body.payload,
        body.topic,
        body.partition_key,
        correlation_id=body.correlation_id or current_correlation_id(),
    )
    return PublishEventResponse(
        event_id=event.id,
        occurred_at=event.occurred_at,
        correlation_id=event.correlation_id,
    )


@router.get("/types", response_model=EventTypesResponse)
async def list_event_types() -> EventTypesResponse:
    """Advertised event types and the broker topics they are published to."""
    event_types = [
        EventTypeInfo(event_type=event_type, topic=topic)
        for event_type, topic in settings.EVENT_TYPES.items()
    ]
    return EventTypesResponse(
        event_types=event_types,
        topics=list(settings.BROKER_TOPICS),
        total_count=len(event_types),
        timestamp=datetime.now(timezone.utc),
    )
