from __future__ import annotations

from typing import Any, Protocol


class WebhookSender(Protocol):
    """Single HTTP delivery attempt.

    Returns the response status code on 2xx, raises DeliveryRejected on other
    statuses and TransientDeliveryError on timeouts and connection errors.
    """

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
    ) -> int: ...
