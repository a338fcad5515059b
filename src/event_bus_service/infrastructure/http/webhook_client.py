"""HTTP client for webhook delivery."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from event_bus_service.application.exceptions import DeliveryRejected, TransientDeliveryError
from event_bus_service.infrastructure.bus.serializer import dumps

logger = logging.getLogger(__name__)


class HttpxWebhookSender:
    """Implements application.ports.webhook.WebhookSender over one shared AsyncClient."""

    def __init__(self, client: httpx.AsyncClient, *, user_agent: str = "EventBus-Webhook/1.0") -> None:
        self._client = client
        self._user_agent = user_agent

    @classmethod
    def create(cls, max_connections: int, *, user_agent: str = "EventBus-Webhook/1.0") -> HttpxWebhookSender:
        client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            follow_redirects=False,
        )
        return cls(client, user_agent=user_agent)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
    ) -> int:
        request_headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            **headers,
        }
        start = time.perf_counter()
        try:
            # httpx timeouts apply per phase; wait_for bounds the whole exchange.
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    content=dumps(payload),
                    headers=request_headers,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise TransientDeliveryError(f"Request timeout after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise TransientDeliveryError(f"Request failed: {exc.__class__.__name__}: {exc}") from exc

        elapsed_ms = (time.perf_counter() - start) * 1000
        if not response.is_success:
            body = response.text[:200] if response.text else ""
            raise DeliveryRejected(
                response.status_code,
                f"HTTP {response.status_code}" + (f": {body}" if body else ""),
            )

        logger.debug("Webhook %s answered %d in %.1fms", url, response.status_code, elapsed_ms)
        return response.status_code
