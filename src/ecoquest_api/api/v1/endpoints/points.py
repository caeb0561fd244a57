"""Point balance endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.api.dependencies.session import require_member_session
from ecoquest_api.db.session import get_session
from ecoquest_api.models.user import User
from ecoquest_api.schemas.economy import BalanceResponse
from ecoquest_api.services.economy import BalanceStore


router = APIRouter(prefix="/points", tags=["points"])


@router.get("/me", response_model=BalanceResponse)
async def get_my_balance(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> BalanceResponse:
    """Return the caller's spendable and lifetime points."""

    snapshot = await BalanceStore(db).get_balance(current_user.id)
    return BalanceResponse.from_snapshot(snapshot)
