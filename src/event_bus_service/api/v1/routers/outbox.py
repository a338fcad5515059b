from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Query

from event_bus_service.api.deps import CurrentAdmin, UoWDep
from event_bus_service.api.v1.schemas.outbox import (
    OutboxEventDetailResponse,
    OutboxEventResponse,
    OutboxStatsResponse,
)
from event_bus_service.services import outbox_service

router = APIRouter(prefix="/api/v1/outbox", tags=["outbox"])


@router.get("/stats", response_model=OutboxStatsResponse)
async def get_stats(admin: CurrentAdmin, uow: UoWDep) -> OutboxStatsResponse:
    stats = await outbox_service.get_outbox_stats(uow)
    now = datetime.now(timezone.utc)
    age = (now - stats.oldest_pending_at).total_seconds() if stats.oldest_pending_at else 0.0
    return OutboxStatsResponse(
        timestamp=now,
        total_pending=stats.total_pending,
        pending_by_type=stats.pending_by_type,
        oldest_event_age_seconds=max(age, 0.0),
        dead_lettered=stats.dead_lettered,
    )


@router.get("/pending", response_model=list[OutboxEventResponse])
async def list_pending(
    admin: CurrentAdmin,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[OutboxEventResponse]:
    events = await outbox_service.list_pending_events(limit, uow)
    return [OutboxEventResponse.model_validate(e, from_attributes=True) for e in events]


@router.get("/dead-letter", response_model=list[OutboxEventResponse])
async def list_dead_lettered(
    admin: CurrentAdmin,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[OutboxEventResponse]:
    events = await outbox_service.list_dead_lettered(limit, uow)
    return [OutboxEventResponse.model_validate(e, from_attributes=True) for e in events]


@router.get("/{event_id}", response_model=OutboxEventDetailResponse)
async def get_event(
    event_id: UUID,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> OutboxEventDetailResponse:
    event = await outbox_service.get_outbox_event(event_id, uow)
    return OutboxEventDetailResponse.model_validate(event, from_attributes=True)


@router.post("/{event_id}/requeue", response_model=OutboxEventDetailResponse)
async def requeue_event(
    event_id: UUID,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> OutboxEventDetailResponse:
    event = await outbox_service.requeue_event(event_id, uow)
    return OutboxEventDetailResponse.model_validate(event, from_attributes=True)
