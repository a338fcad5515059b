from __future__ import annotations

from dataclasses import dataclass, field

from event_bus_service.domain.value_objects.enums import PrincipalRole


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    subject: str
    roles: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return PrincipalRole.ADMIN in self.roles
