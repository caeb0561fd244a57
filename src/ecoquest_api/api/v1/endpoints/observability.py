"""Observability endpoints for the points economy."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ecoquest_api.api.dependencies.security import require_admin_api_key
from ecoquest_api.observability.economy import get_economy_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/economy",
    dependencies=[Depends(require_admin_api_key)],
    summary="Points economy observability snapshot",
)
async def get_economy_snapshot() -> dict[str, object]:
    """Operation outcomes, point flows and notification delivery counters."""
    return get_economy_store().snapshot().as_dict()
