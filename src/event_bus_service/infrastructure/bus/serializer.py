from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from event_bus_service.application.dto.events import DeliveredEvent


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, cls=_Encoder, separators=(",", ":"))


def encode_stream_fields(
    topic: str,
    key: str | None,
    payload: dict[str, Any],
    headers: dict[str, str],
) -> dict[str, str]:
    """Flatten a broker message into Redis stream fields."""
    fields = {k: v for k, v in headers.items() if v is not None}
    fields["topic"] = topic
    fields["partition_key"] = key or ""
    fields["payload"] = dumps(payload)
    return fields


def decode_stream_fields(fields: dict[str, str]) -> DeliveredEvent:
    return DeliveredEvent(
        event_id=UUID(fields["event_id"]),
        event_type=fields["event_type"],
        topic=fields["topic"],
        payload=json.loads(fields["payload"]),
        occurred_at=datetime.fromisoformat(fields["occurred_at"]),
        partition_key=fields.get("partition_key") or None,
        correlation_id=fields.get("correlation_id") or None,
    )
