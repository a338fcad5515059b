"""Import all models so Base.metadata sees every table."""
from event_bus_service.infrastructure.db.models.outbox import OutboxEventModel
from event_bus_service.infrastructure.db.models.subscription import EventSubscriptionModel

__all__ = [
    "EventSubscriptionModel",
    "OutboxEventModel",
]
