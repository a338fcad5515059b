from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query

from event_bus_service.api.deps import CurrentAdmin, UoWDep
from event_bus_service.api.v1.schemas.subscription import (
    CreateSubscriptionRequest,
    SubscriptionResponse,
)
from event_bus_service.application.dto.subscription import (
    NewSubscriptionDTO,
    SubscriptionFilterDTO,
)
from event_bus_service.services import subscription_service

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionResponse, status_code=201)
async def create_subscription(
    body: CreateSubscriptionRequest,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> SubscriptionResponse:
    sub = await subscription_service.register_subscription(
        NewSubscriptionDTO(
            service_name=body.service_name,
            event_type=body.event_type,
            webhook_url=str(body.webhook_url),
            retry_count=body.retry_count,
            timeout_seconds=body.timeout_seconds,
        ),
        uow,
    )
    return SubscriptionResponse.model_validate(sub, from_attributes=True)


@router.get("", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    admin: CurrentAdmin,
    uow: UoWDep,
    service_name: str | None = Query(None),
    event_type: str | None = Query(None),
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
) -> list[SubscriptionResponse]:
    filters = SubscriptionFilterDTO(
        service_name=service_name,
        event_type=event_type,
        active_only=active_only,
        limit=limit,
    )
    subs = await subscription_service.list_subscriptions(filters, uow)
    return [SubscriptionResponse.model_validate(s, from_attributes=True) for s in subs]


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(
    subscription_id: UUID,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> SubscriptionResponse:
    sub = await subscription_service.get_subscription(subscription_id, uow)
    return SubscriptionResponse.model_validate(sub, from_attributes=True)


@router.post("/{subscription_id}/deactivate", response_model=SubscriptionResponse)
async def deactivate_subscription(
    subscription_id: UUID,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> SubscriptionResponse:
    sub = await subscription_service.deactivate_subscription(subscription_id, uow)
    return SubscriptionResponse.model_validate(sub, from_attributes=True)


@router.post("/{subscription_id}/activate", response_model=SubscriptionResponse)
async def activate_subscription(
    subscription_id: UUID,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> SubscriptionResponse:
    sub = await subscription_service.activate_subscription(subscription_id, uow)
    return SubscriptionResponse.model_validate(sub, from_attributes=True)
