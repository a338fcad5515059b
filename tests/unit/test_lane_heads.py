from __future__ import annotations

import uuid
from datetime import timedelta

from event_bus_service.infrastructure.db.repositories.outbox import keep_lane_heads
from tests.conftest import T0, make_event


def _head(event):
    return (event.occurred_at, event.id)


def _ordered(*events):
    return sorted(events, key=lambda e: (e.occurred_at, e.id))


def test_lanes_starting_at_their_head_are_kept():
    a1 = make_event(partition_key="a", occurred_at=T0)
    a2 = make_event(partition_key="a", occurred_at=T0 + timedelta(seconds=1))
    unkeyed = make_event(occurred_at=T0 + timedelta(seconds=2))
    claimed = _ordered(a1, a2, unkeyed)

    assert keep_lane_heads(claimed, {"a": _head(a1)}) == claimed


def test_lane_with_head_locked_elsewhere_is_dropped():
    locked_head = make_event(partition_key="a", occurred_at=T0)
    a2 = make_event(partition_key="a", occurred_at=T0 + timedelta(seconds=1))
    a3 = make_event(partition_key="a", occurred_at=T0 + timedelta(seconds=2))
    b1 = make_event(partition_key="b", occurred_at=T0 + timedelta(seconds=1))
    unkeyed = make_event(occurred_at=T0 + timedelta(seconds=3))

    kept = keep_lane_heads(
        _ordered(a2, a3, b1, unkeyed),
        {"a": _head(locked_head), "b": _head(b1)},
    )

    assert kept == [b1, unkeyed]


def test_same_timestamp_tie_is_broken_by_id():
    low, high = sorted([uuid.uuid4(), uuid.uuid4()])
    locked_head = make_event(id=low, partition_key="a", occurred_at=T0)
    same_instant = make_event(id=high, partition_key="a", occurred_at=T0)

    assert keep_lane_heads([same_instant], {"a": _head(locked_head)}) == []


def test_empty_claim():
    assert keep_lane_heads([], {}) == []
