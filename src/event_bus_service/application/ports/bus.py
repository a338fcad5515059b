from __future__ import annotations

from typing import Any, Protocol


class EventBroker(Protocol):
    """Partitioned at-least-once pub/sub transport.

    Implementations raise TransientTransportError when the message could not
    be handed to the broker.
    """

    async def publish(
        self,
        topic: str,
        key: str | None,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> None: ...
