"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable
from uuid import UUID

import pytest

from event_bus_service.application.dto.outbox import OutboxStats
from event_bus_service.application.dto.subscription import SubscriptionFilterDTO
from event_bus_service.application.exceptions import (
    ConfigurationError,
    DeliveryRejected,
    PersistenceError,
    TransientDeliveryError,
    TransientTransportError,
)
from event_bus_service.domain.entities.outbox_event import OutboxEvent
from event_bus_service.domain.entities.subscription import EventSubscription
from event_bus_service.infrastructure.db.repositories.outbox import keep_lane_heads

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Advances by ``step`` on every call so timestamps are strictly increasing."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(milliseconds=1)) -> None:
        self._current = start
        self._step = step

    def now(self) -> datetime:
        self._current += self._step
        return self._current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_event(
    *,
    event_type: str = "UserRegistered",
    topic: str = "user-events",
    partition_key: str | None = None,
    occurred_at: datetime = T0,
    **kwargs: Any,
) -> OutboxEvent:
    return OutboxEvent(
        id=kwargs.pop("id", None) or uuid.uuid4(),
        event_type=event_type,
        payload=kwargs.pop("payload", None) or {"userId": "user-42"},
        topic=topic,
        partition_key=partition_key,
        occurred_at=occurred_at,
        **kwargs,
    )


def make_subscription(
    *,
    service_name: str = "user-service",
    event_type: str = "UserRegistered",
    webhook_url: str = "http://user-service/webhooks",
    is_active: bool = True,
    retry_count: int = 3,
    timeout_seconds: int = 30,
    **kwargs: Any,
) -> EventSubscription:
    return EventSubscription(
        id=kwargs.pop("id", None) or uuid.uuid4(),
        service_name=service_name,
        event_type=event_type,
        webhook_url=webhook_url,
        is_active=is_active,
        retry_count=retry_count,
        timeout_seconds=timeout_seconds,
        created_at=T0,
        updated_at=T0,
        **kwargs,
    )


@dataclass
class FakeStore:
    """Committed state shared by every FakeUoW opened on it."""

    outbox: dict[UUID, OutboxEvent] = field(default_factory=dict)
    subscriptions: dict[UUID, EventSubscription] = field(default_factory=dict)
    fail_on_add: bool = False
    commit_failures: int = 0
    # Rows held FOR UPDATE by another publisher instance.
    locked_elsewhere: set[UUID] = field(default_factory=set)


def _pending(store: FakeStore) -> list[OutboxEvent]:
    rows = [e for e in store.outbox.values() if not e.published and e.dead_lettered_at is None]
    return sorted(rows, key=lambda e: (e.occurred_at, e.id))


@dataclass
class FakeOutboxRepo:
    _store: FakeStore
    _journal: list[Callable[[], None]]

    async def add(self, event: OutboxEvent) -> None:
        if self._store.fail_on_add:
            raise PersistenceError("insert rejected")
        self._journal.append(lambda: self._store.outbox.__setitem__(event.id, event))

    async def claim_pending(self, batch_size: int) -> list[OutboxEvent]:
        pending = _pending(self._store)
        claimed = [e for e in pending if e.id not in self._store.locked_elsewhere][:batch_size]
        heads: dict[str, tuple[datetime, UUID]] = {}
        for e in pending:
            if e.partition_key is not None:
                heads.setdefault(e.partition_key, (e.occurred_at, e.id))
        return keep_lane_heads(claimed, heads)

    def _update(self, event_id: UUID, **changes: Any) -> None:
        def apply() -> None:
            current = self._store.outbox.get(event_id)
            if current is None or current.published:
                return
            values = {k: v(current) if callable(v) else v for k, v in changes.items()}
            self._store.outbox[event_id] = replace(current, **values)

        self._journal.append(apply)

    async def mark_published(self, event_id: UUID, published_at: datetime) -> None:
        self._update(event_id, published=True, published_at=published_at)

    async def record_failure(
        self,
        event_id: UUID,
        error: str,
        dead_lettered_at: datetime | None = None,
    ) -> None:
        changes: dict[str, Any] = {
            "publish_attempt_count": lambda e: e.publish_attempt_count + 1,
            "last_error_message": error,
        }
        if dead_lettered_at is not None:
            changes["dead_lettered_at"] = dead_lettered_at
        self._update(event_id, **changes)

    async def get_by_id(self, event_id: UUID) -> OutboxEvent | None:
        return self._store.outbox.get(event_id)

    async def list_pending(self, limit: int) -> list[OutboxEvent]:
        return _pending(self._store)[:limit]

    async def list_dead_lettered(self, limit: int) -> list[OutboxEvent]:
        rows = [e for e in self._store.outbox.values() if not e.published and e.dead_lettered_at]
        return rows[:limit]

    async def requeue(self, event_id: UUID) -> None:
        self._update(
            event_id,
            retry_from_attempt=lambda e: e.publish_attempt_count,
            dead_lettered_at=None,
        )

    async def stats(self) -> OutboxStats:
        pending = _pending(self._store)
        by_type: dict[str, int] = {}
        for e in pending:
            by_type[e.event_type] = by_type.get(e.event_type, 0) + 1
        dead = [e for e in self._store.outbox.values() if not e.published and e.dead_lettered_at]
        return OutboxStats(
            total_pending=len(pending),
            pending_by_type=by_type,
            oldest_pending_at=pending[0].occurred_at if pending else None,
            dead_lettered=len(dead),
        )


@dataclass
class FakeSubscriptionReader:
    _store: FakeStore

    async def get_by_id(self, subscription_id: UUID) -> EventSubscription | None:
        return self._store.subscriptions.get(subscription_id)

    async def find_by_target(
        self,
        service_name: str,
        event_type: str,
        webhook_url: str,
    ) -> EventSubscription | None:
        for s in self._store.subscriptions.values():
            if s.target == (service_name, event_type, webhook_url):
                return s
        return None

    async def list(self, filters: SubscriptionFilterDTO) -> list[EventSubscription]:
        result = [
            s for s in self._store.subscriptions.values()
            if (filters.service_name is None or s.service_name == filters.service_name)
            and (filters.event_type is None or s.event_type == filters.event_type)
            and (not filters.active_only or s.is_active)
        ]
        return result[:filters.limit]

    async def list_active_for_event_type(self, event_type: str) -> list[EventSubscription]:
        return [
            s for s in self._store.subscriptions.values()
            if s.event_type == event_type and s.is_active
        ]


@dataclass
class FakeSubscriptionWriter:
    _store: FakeStore
    _journal: list[Callable[[], None]]

    async def add(self, subscription: EventSubscription) -> None:
        for s in self._store.subscriptions.values():
            if s.target == subscription.target:
                raise ConfigurationError("duplicate target")
        self._journal.append(
            lambda: self._store.subscriptions.__setitem__(subscription.id, subscription)
        )

    def _update(self, subscription_id: UUID, **changes: Any) -> None:
        def apply() -> None:
            current = self._store.subscriptions.get(subscription_id)
            if current is not None:
                self._store.subscriptions[subscription_id] = replace(current, **changes)

        self._journal.append(apply)

    async def set_active(self, subscription_id: UUID, active: bool) -> None:
        changes: dict[str, Any] = {"is_active": active}
        if active:
            changes["consecutive_failures"] = 0
        self._update(subscription_id, **changes)

    async def record_delivery_success(self, subscription_id: UUID, at: datetime) -> None:
        self._update(subscription_id, last_delivered_at=at, failure_reason=None, consecutive_failures=0)

    async def record_delivery_failure(
        self,
        subscription_id: UUID,
        at: datetime,
        reason: str,
    ) -> int:
        current = self._store.subscriptions[subscription_id]
        failures = current.consecutive_failures + 1
        self._update(
            subscription_id,
            last_failed_at=at,
            failure_reason=reason,
            consecutive_failures=failures,
        )
        return failures


@dataclass
class FakeUoW:
    """In-memory UoW: writes are journaled and applied to the store on commit."""

    store: FakeStore = field(default_factory=FakeStore)
    _journal: list[Callable[[], None]] = field(default_factory=list)
    _committed: bool = False
    _rolled_back: bool = False

    def __post_init__(self) -> None:
        self.outbox = FakeOutboxRepo(self.store, self._journal)
        self.subscriptions = FakeSubscriptionReader(self.store)
        self.subscriptions_w = FakeSubscriptionWriter(self.store, self._journal)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        if self.store.commit_failures > 0:
            self.store.commit_failures -= 1
            self._journal.clear()
            raise PersistenceError("commit failed")
        for apply in self._journal:
            apply()
        self._journal.clear()
        self._committed = True

    async def rollback(self) -> None:
        self._journal.clear()
        self._rolled_back = True

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # Uncommitted work is discarded, as when a session closes.
        self._journal.clear()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def uow_factory(store: FakeStore):
    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        async with FakeUoW(store) as uow:
            yield uow

    return _factory


@dataclass
class FakeBroker:
    messages: list[tuple[str, str | None, dict[str, Any], dict[str, str]]] = field(default_factory=list)
    fail_all: bool = False
    fail_event_ids: set[str] = field(default_factory=set)

    async def publish(
        self,
        topic: str,
        key: str | None,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> None:
        if self.fail_all or headers["event_id"] in self.fail_event_ids:
            raise TransientTransportError("broker unavailable")
        self.messages.append((topic, key, payload, headers))

    @property
    def published_ids(self) -> list[str]:
        return [headers["event_id"] for _t, _k, _p, headers in self.messages]


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@dataclass
class FakeWebhookSender:
    """Scripted webhook endpoints.

    ``responses`` maps a URL to a list of outcomes consumed one per call;
    the last outcome repeats. An outcome is a status code, ``"timeout"``,
    or an exception instance to raise.
    """

    responses: dict[str, list[Any]] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, Any], dict[str, str], float]] = field(default_factory=list)
    delay: float = 0.0
    in_flight: int = 0
    max_in_flight: int = 0

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
    ) -> int:
        self.calls.append((url, payload, headers, timeout))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        script = self.responses.get(url, [200])
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "timeout":
            raise TransientDeliveryError(f"Request timeout after {timeout}s")
        if not 200 <= outcome < 300:
            raise DeliveryRejected(outcome)
        return outcome

    def calls_to(self, url: str) -> list[tuple[str, dict[str, Any], dict[str, str], float]]:
        return [c for c in self.calls if c[0] == url]


@pytest.fixture
def sender() -> FakeWebhookSender:
    return FakeWebhookSender()
