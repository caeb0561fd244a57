from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.core.settings import settings
from ecoquest_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/health/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.warning("Readiness database check failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    sink = getattr(request.app.state, "notification_sink", None)
    if settings.realtime_enabled and sink is not None:
        components["realtime"] = ComponentStatus(status="ready", detail=type(sink).__name__)
    elif settings.realtime_enabled:
        components["realtime"] = ComponentStatus(status="error", detail="Realtime publisher not initialised")
        status = "degraded" if status != "error" else status
    else:
        components["realtime"] = ComponentStatus(
            status="disabled",
            detail="Realtime fan-out disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
