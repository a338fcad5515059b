from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from event_bus_service.domain.value_objects.enums import DeliveryState


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    subscription_id: UUID
    state: DeliveryState
    attempts: int
    status_code: int | None = None
    error: str | None = None
    deactivated: bool = False


@dataclass(slots=True)
class DispatchReport:
    """Aggregated result of fanning one event out to its subscribers."""

    event_id: UUID
    event_type: str
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    errors: list[BaseException] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for o in self.outcomes if o.state == DeliveryState.DELIVERED)

    @property
    def exhausted(self) -> int:
        return sum(1 for o in self.outcomes if o.state == DeliveryState.EXHAUSTED)
