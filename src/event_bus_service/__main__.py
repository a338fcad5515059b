"""Entrypoint: python -m event_bus_service (HTTP API only; workers run separately)."""
from __future__ import annotations

import uvicorn

from event_bus_service.config import settings


def main() -> None:
    uvicorn.run(
        "event_bus_service.app:create_app",
        factory=True,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
