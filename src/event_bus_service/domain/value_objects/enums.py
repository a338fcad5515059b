from __future__ import annotations

from enum import StrEnum


class DeliveryState(StrEnum):
    PENDING = "pending"
    RETRYING = "retrying"
    DELIVERED = "delivered"
    EXHAUSTED = "exhausted"


class PrincipalRole(StrEnum):
    SERVICE = "service"
    ADMIN = "admin"
