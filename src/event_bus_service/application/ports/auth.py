from __future__ import annotations

from typing import Protocol

from event_bus_service.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Turns a bearer token into a Principal or raises AuthenticationError."""

    async def verify(self, token: str) -> Principal: ...
