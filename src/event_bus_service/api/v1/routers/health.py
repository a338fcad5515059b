from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from event_bus_service.infrastructure.db.models.outbox import OutboxEventModel
from event_bus_service.infrastructure.db.session import AsyncSessionLocal

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    errors: list[str] = []
    details: dict[str, Any] = {}

    try:
        async with AsyncSessionLocal() as session:
            details["outbox_pending"] = await session.scalar(
                select(func.count()).select_from(OutboxEventModel).where(
                    OutboxEventModel.published.is_(False),
                    OutboxEventModel.dead_lettered_at.is_(None),
                )
            )
    except Exception as exc:  # noqa: BLE001
        errors.append(f"postgres: {exc}")

    try:
        redis = request.app.state.redis
        await redis.ping()
    except Exception as exc:  # noqa: BLE001
        errors.append(f"redis: {exc}")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": errors},
        )
    return JSONResponse(content={"status": "ready", **details})
