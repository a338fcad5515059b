from __future__ import annotations

import jwt

from event_bus_service.application.dto.principal import Principal
from event_bus_service.application.exceptions import AuthenticationError


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub"]},
            )
        except jwt.PyJWTError as exc:
            raise AuthenticationError(str(exc)) from exc

        roles = payload.get("roles", [])
        if isinstance(roles, str):
            roles = [roles]
        return Principal(subject=str(payload["sub"]), roles=list(roles))
