"""Fan a broker-delivered event out to every active webhook subscription.

Each subscription is delivered independently: its own retry loop, its own
unit of work for bookkeeping. Deliveries run in parallel under a semaphore
and are collected by a single ``gather`` so that one subscriber failing,
or even raising unexpectedly, never cancels the others.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from event_bus_service.application.dto.delivery import DeliveryOutcome, DispatchReport
from event_bus_service.application.dto.events import DeliveredEvent
from event_bus_service.application.exceptions import DeliveryRejected, TransientDeliveryError
from event_bus_service.application.ports.clock import Clock, system_clock
from event_bus_service.application.ports.webhook import WebhookSender
from event_bus_service.application.uow import UoWFactory
from event_bus_service.domain.entities.subscription import EventSubscription
from event_bus_service.domain.value_objects.enums import DeliveryState

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    base_delay: float = 1.0
    max_delay: float = 60.0

    def delay_for(self, retry: int) -> float:
        """Delay before retry number ``retry`` (0-based)."""
        return min(self.base_delay * (2 ** retry), self.max_delay)


def delivery_id(event_id: uuid.UUID, subscription_id: uuid.UUID) -> str:
    """Stable across retries so receivers can deduplicate."""
    return str(uuid.uuid5(event_id, str(subscription_id)))


def webhook_headers(event: DeliveredEvent, subscription: EventSubscription, attempt: int) -> dict[str, str]:
    headers = {
        "X-Event-Type": event.event_type,
        "X-Event-Id": str(event.event_id),
        "X-Delivery-Id": delivery_id(event.event_id, subscription.id),
        "X-Delivery-Attempt": str(attempt),
    }
    if event.correlation_id:
        headers["X-Correlation-Id"] = event.correlation_id
    return headers


async def dispatch_event(
    event: DeliveredEvent,
    uow_factory: UoWFactory,
    sender: WebhookSender,
    *,
    max_concurrency: int = 16,
    retry_policy: RetryPolicy = RetryPolicy(),
    deactivate_after: int = 0,
    clock: Clock = system_clock,
    sleep: Sleep = asyncio.sleep,
) -> DispatchReport:
    report = DispatchReport(event_id=event.event_id, event_type=event.event_type)

    async with uow_factory() as uow:
        subscriptions = await uow.subscriptions.list_active_for_event_type(event.event_type)

    if not subscriptions:
        logger.debug("No active subscriptions for %s (event %s)", event.event_type, event.event_id)
        return report

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _bounded(subscription: EventSubscription) -> DeliveryOutcome:
        async with semaphore:
            return await _deliver_to_subscription(
                event,
                subscription,
                uow_factory,
                sender,
                retry_policy=retry_policy,
                deactivate_after=deactivate_after,
                clock=clock,
                sleep=sleep,
            )

    results = await asyncio.gather(
        *(_bounded(s) for s in subscriptions),
        return_exceptions=True,
    )
    for subscription, result in zip(subscriptions, results):
        if isinstance(result, DeliveryOutcome):
            report.outcomes.append(result)
        elif isinstance(result, Exception):
            logger.error(
                "Unexpected error delivering event %s to subscription %s",
                event.event_id, subscription.id, exc_info=result,
            )
            report.errors.append(result)
        else:
            # CancelledError and friends belong to the caller.
            raise result

    logger.info(
        "Event %s (%s) dispatched: subscriptions=%d delivered=%d exhausted=%d errors=%d",
        event.event_id, event.event_type, len(subscriptions),
        report.delivered, report.exhausted, len(report.errors),
    )
    return report


async def _deliver_to_subscription(
    event: DeliveredEvent,
    subscription: EventSubscription,
    uow_factory: UoWFactory,
    sender: WebhookSender,
    *,
    retry_policy: RetryPolicy,
    deactivate_after: int,
    clock: Clock,
    sleep: Sleep,
) -> DeliveryOutcome:
    max_attempts = 1 + max(0, subscription.retry_count)
    status_code: int | None = None
    error = ""
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        try:
            status_code = await sender.send(
                subscription.webhook_url,
                event.payload,
                webhook_headers(event, subscription, attempt),
                float(subscription.timeout_seconds),
            )
        except TransientDeliveryError as exc:
            status_code = exc.status_code if isinstance(exc, DeliveryRejected) else None
            error = exc.detail or exc.__class__.__name__
            if attempt < max_attempts:
                logger.debug(
                    "Delivery of %s to %s failed (attempt %d/%d): %s",
                    event.event_id, subscription.webhook_url, attempt, max_attempts, error,
                )
                await sleep(retry_policy.delay_for(attempt - 1))
            continue

        async with uow_factory() as uow:
            await uow.subscriptions_w.record_delivery_success(subscription.id, clock.now())
            await uow.commit()
        return DeliveryOutcome(
            subscription_id=subscription.id,
            state=DeliveryState.DELIVERED,
            attempts=attempt,
            status_code=status_code,
        )

    reason = f"{error} after {attempt} attempt(s)"
    deactivated = False
    async with uow_factory() as uow:
        failures = await uow.subscriptions_w.record_delivery_failure(
            subscription.id, clock.now(), reason,
        )
        if deactivate_after > 0 and failures >= deactivate_after:
            await uow.subscriptions_w.set_active(subscription.id, False)
            deactivated = True
        await uow.commit()

    logger.warning(
        "Delivery of event %s to subscription %s (%s) exhausted: %s",
        event.event_id, subscription.id, subscription.webhook_url, reason,
    )
    if deactivated:
        logger.warning(
            "Subscription %s deactivated after %d consecutive failed deliveries",
            subscription.id, deactivate_after,
        )
    return DeliveryOutcome(
        subscription_id=subscription.id,
        state=DeliveryState.EXHAUSTED,
        attempts=attempt,
        status_code=status_code,
        error=reason,
        deactivated=deactivated,
    )
