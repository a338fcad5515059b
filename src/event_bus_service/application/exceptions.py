from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class ConfigurationError(AppError):
    """Rejected registration, e.g. a duplicate subscription target."""


class PersistenceError(AppError):
    """The store rejected a write; the surrounding transaction must abort."""


class TransientTransportError(AppError):
    """The broker could not be reached or did not answer in time."""


class TransientDeliveryError(AppError):
    """A webhook endpoint was unreachable or timed out."""


class DeliveryRejected(TransientDeliveryError):
    """A webhook endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        super().__init__(detail or f"HTTP {status_code}")


class AuthenticationError(AppError):
    """Bearer token missing, malformed, expired or signed with the wrong key."""
