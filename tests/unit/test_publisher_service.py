from __future__ import annotations

from dataclasses import replace

import pytest

from event_bus_service.application.exceptions import PersistenceError
from event_bus_service.services import outbox_service, outbox_writer
from event_bus_service.services.publisher_service import publish_pending
from tests.conftest import FakeStore, FakeUoW


async def _append(store, clock, event_type="UserRegistered", key=None, topic="user-events", payload=None):
    uow = FakeUoW(store)
    event = await outbox_writer.append(
        uow.outbox, event_type, payload or {"n": event_type}, topic, key, clock=clock,
    )
    await uow.commit()
    return event


async def _cycle(store, broker, clock, *, batch_size=50, max_attempts=0):
    return await publish_pending(
        FakeUoW(store), broker, batch_size=batch_size, max_attempts=max_attempts, clock=clock,
    )


def _assert_published_invariant(store: FakeStore) -> None:
    for row in store.outbox.values():
        assert row.published == (row.published_at is not None)


@pytest.mark.asyncio
async def test_user_registered_is_published_first_try(store, broker, clock):
    event = await _append(store, clock, key="user-42", payload={"userId": "user-42"})

    result = await _cycle(store, broker, clock)

    row = store.outbox[event.id]
    assert result.published == 1
    assert row.published is True
    assert row.published_at is not None
    assert row.publish_attempt_count == 0
    topic, key, payload, headers = broker.messages[0]
    assert (topic, key, payload) == ("user-events", "user-42", {"userId": "user-42"})
    assert headers["event_type"] == "UserRegistered"
    assert headers["event_id"] == str(event.id)


@pytest.mark.asyncio
async def test_failed_publish_is_counted_and_retried(store, broker, clock):
    event = await _append(store, clock, key="user-42")
    broker.fail_all = True

    result = await _cycle(store, broker, clock)

    row = store.outbox[event.id]
    assert result.failed == 1
    assert row.published is False
    assert row.publish_attempt_count == 1
    assert "broker unavailable" in row.last_error_message

    broker.fail_all = False
    await _cycle(store, broker, clock)

    row = store.outbox[event.id]
    assert row.published is True
    assert row.publish_attempt_count == 1
    _assert_published_invariant(store)


@pytest.mark.asyncio
async def test_broker_outage_never_loses_events(store, broker, clock):
    events = [await _append(store, clock, key=f"user-{i}") for i in range(5)]
    broker.fail_all = True

    for _ in range(3):
        await _cycle(store, broker, clock)

    for e in events:
        assert store.outbox[e.id].publish_attempt_count == 3
        assert store.outbox[e.id].published is False

    broker.fail_all = False
    await _cycle(store, broker, clock)

    assert all(store.outbox[e.id].published for e in events)


@pytest.mark.asyncio
async def test_same_key_published_in_occurred_at_order(store, broker, clock):
    # Two concurrent transactions: the later event commits first.
    uow_a, uow_b = FakeUoW(store), FakeUoW(store)
    first = await outbox_writer.append(uow_a.outbox, "OrderPlaced", {"n": 1}, "order-events", "user-7", clock=clock)
    second = await outbox_writer.append(uow_b.outbox, "OrderPaid", {"n": 2}, "order-events", "user-7", clock=clock)
    await uow_b.commit()
    await uow_a.commit()

    await _cycle(store, broker, clock)

    assert broker.published_ids == [str(first.id), str(second.id)]
    assert store.outbox[first.id].published_at < store.outbox[second.id].published_at


@pytest.mark.asyncio
async def test_failure_blocks_rest_of_the_key_lane(store, broker, clock):
    head = await _append(store, clock, key="user-1")
    follower = await _append(store, clock, key="user-1")
    other = await _append(store, clock, key="user-2")
    broker.fail_event_ids = {str(head.id)}

    result = await _cycle(store, broker, clock)

    assert result.failed == 1
    assert result.deferred == 1
    assert result.published == 1
    assert broker.published_ids == [str(other.id)]
    assert store.outbox[follower.id].published is False
    assert store.outbox[follower.id].publish_attempt_count == 0

    broker.fail_event_ids = set()
    await _cycle(store, broker, clock)

    assert broker.published_ids == [str(other.id), str(head.id), str(follower.id)]


@pytest.mark.asyncio
async def test_unkeyed_failure_does_not_block_others(store, broker, clock):
    failing = await _append(store, clock)
    ok = await _append(store, clock)
    broker.fail_event_ids = {str(failing.id)}

    await _cycle(store, broker, clock)

    assert store.outbox[ok.id].published is True


@pytest.mark.asyncio
async def test_crash_before_marking_published_republishes(store, broker, clock):
    event = await _append(store, clock, key="user-42")
    store.commit_failures = 1

    with pytest.raises(PersistenceError):
        await _cycle(store, broker, clock)

    assert broker.published_ids == [str(event.id)]
    assert store.outbox[event.id].published is False

    await _cycle(store, broker, clock)

    assert broker.published_ids == [str(event.id), str(event.id)]
    assert store.outbox[event.id].published is True
    assert store.outbox[event.id].publish_attempt_count == 0


@pytest.mark.asyncio
async def test_batch_size_bounds_a_cycle(store, broker, clock):
    for _ in range(5):
        await _append(store, clock)

    result = await _cycle(store, broker, clock, batch_size=2)

    assert result.published == 2
    assert len(broker.messages) == 2


@pytest.mark.asyncio
async def test_empty_outbox_is_a_noop(store, broker, clock):
    result = await _cycle(store, broker, clock)

    assert result.total_processed == 0
    assert broker.messages == []


@pytest.mark.asyncio
async def test_row_is_dead_lettered_after_attempt_budget(store, broker, clock):
    event = await _append(store, clock, key="user-1")
    follower = await _append(store, clock, key="user-1")
    broker.fail_event_ids = {str(event.id)}

    await _cycle(store, broker, clock, max_attempts=2)
    result = await _cycle(store, broker, clock, max_attempts=2)

    row = store.outbox[event.id]
    assert result.dead_lettered == 1
    assert row.dead_lettered_at is not None
    assert row.published is False
    assert row.publish_attempt_count == 2

    # Parked rows are skipped and release their key lane.
    await _cycle(store, broker, clock, max_attempts=2)
    assert store.outbox[event.id].publish_attempt_count == 2
    assert store.outbox[follower.id].published is True


@pytest.mark.asyncio
async def test_requeued_row_gets_a_fresh_budget(store, broker, clock):
    event = await _append(store, clock)
    broker.fail_all = True
    await _cycle(store, broker, clock, max_attempts=1)
    assert store.outbox[event.id].dead_lettered_at is not None

    await outbox_service.requeue_event(event.id, FakeUoW(store))
    row = store.outbox[event.id]
    assert row.dead_lettered_at is None
    assert row.retry_from_attempt == 1

    await _cycle(store, broker, clock, max_attempts=1)
    row = store.outbox[event.id]
    assert row.publish_attempt_count == 2
    assert row.dead_lettered_at is not None

    await outbox_service.requeue_event(event.id, FakeUoW(store))
    broker.fail_all = False
    await _cycle(store, broker, clock, max_attempts=1)
    assert store.outbox[event.id].published is True
    assert store.outbox[event.id].publish_attempt_count == 2


@pytest.mark.asyncio
async def test_zero_max_attempts_never_dead_letters(store, broker, clock):
    event = await _append(store, clock)
    broker.fail_all = True

    for _ in range(20):
        await _cycle(store, broker, clock, max_attempts=0)

    row = store.outbox[event.id]
    assert row.publish_attempt_count == 20
    assert row.dead_lettered_at is None


@pytest.mark.asyncio
async def test_correlation_id_travels_in_headers(store, broker, clock):
    uow = FakeUoW(store)
    await outbox_writer.append(
        uow.outbox, "UserRegistered", {}, "user-events", correlation_id="req-9", clock=clock,
    )
    await uow.commit()

    await _cycle(store, broker, clock)

    assert broker.messages[0][3]["correlation_id"] == "req-9"


@pytest.mark.asyncio
async def test_lane_whose_head_is_locked_by_another_instance_is_skipped(store, broker, clock):
    head = await _append(store, clock, key="user-1")
    follower = await _append(store, clock, key="user-1")
    other = await _append(store, clock, key="user-2")
    store.locked_elsewhere = {head.id}

    result = await _cycle(store, broker, clock)

    assert broker.published_ids == [str(other.id)]
    assert result.published == 1
    assert store.outbox[follower.id].published is False

    # The other instance publishes the head and releases its lock.
    store.outbox[head.id] = replace(store.outbox[head.id], published=True, published_at=clock.now())
    store.locked_elsewhere = set()
    await _cycle(store, broker, clock)

    assert broker.published_ids == [str(other.id), str(follower.id)]
