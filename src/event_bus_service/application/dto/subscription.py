from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NewSubscriptionDTO:
    service_name: str
    event_type: str
    webhook_url: str
    retry_count: int = 3
    timeout_seconds: int = 30


@dataclass(frozen=True, slots=True)
class SubscriptionFilterDTO:
    service_name: str | None = None
    event_type: str | None = None
    active_only: bool = False
    limit: int = 100
