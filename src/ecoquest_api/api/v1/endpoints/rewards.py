"""API endpoints for the sponsor reward catalog and redemptions."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.api.dependencies.notifications import get_dispatcher
from ecoquest_api.api.dependencies.security import require_admin_api_key
from ecoquest_api.api.dependencies.session import require_member_session
from ecoquest_api.core.settings import settings
from ecoquest_api.db.session import get_session
from ecoquest_api.models.reward import RedemptionState
from ecoquest_api.models.user import User
from ecoquest_api.schemas.economy import (
    CancelRedemptionRequest,
    CancelRedemptionResponse,
    CatalogStatsResponse,
    RedeemResponse,
    RedemptionListResponse,
    RedemptionResponse,
    RewardListResponse,
    RewardResponse,
)
from ecoquest_api.schemas.pagination import PageMetaResponse
from ecoquest_api.services.notifications import NotificationDispatcher
from ecoquest_api.services.rewards import RedemptionEngine, RewardCatalog


router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("", response_model=RewardListResponse)
async def list_rewards(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    sponsor_id: Optional[UUID] = Query(None, alias="sponsorId"),
    active_only: bool = Query(False, alias="activeOnly"),
    available_only: bool = Query(False, alias="availableOnly"),
    db: AsyncSession = Depends(get_session),
) -> RewardListResponse:
    result = await RewardCatalog(db).list_rewards(
        page,
        limit,
        sponsor_id=sponsor_id,
        active_only=active_only,
        available_only=available_only,
    )
    return RewardListResponse(
        data=[RewardResponse.from_view(reward) for reward in result.items],
        meta=PageMetaResponse.from_meta(result.meta),
    )


@router.get(
    "/stats",
    response_model=CatalogStatsResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def get_reward_stats(db: AsyncSession = Depends(get_session)) -> CatalogStatsResponse:
    stats = await RewardCatalog(db).stats()
    return CatalogStatsResponse(**stats.as_dict())


@router.get(
    "/redemptions",
    response_model=RedemptionListResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def list_redemptions(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    status_filter: Optional[RedemptionState] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
) -> RedemptionListResponse:
    """All redemptions, newest claim first (operator view)."""

    result = await RedemptionEngine(db).list_redemptions(page, limit, user_id=user_id, status=status_filter)
    return RedemptionListResponse(
        data=[RedemptionResponse.from_view(redemption) for redemption in result.items],
        meta=PageMetaResponse.from_meta(result.meta),
    )


@router.get("/redemptions/mine", response_model=RedemptionListResponse)
async def list_my_redemptions(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    status_filter: Optional[RedemptionState] = Query(None, alias="status"),
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> RedemptionListResponse:
    result = await RedemptionEngine(db).list_redemptions(
        page,
        limit,
        user_id=current_user.id,
        status=status_filter,
    )
    return RedemptionListResponse(
        data=[RedemptionResponse.from_view(redemption) for redemption in result.items],
        meta=PageMetaResponse.from_meta(result.meta),
    )


@router.post(
    "/redemptions/{redemption_id}/fulfill",
    response_model=RedemptionResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def fulfill_redemption(
    redemption_id: UUID,
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> RedemptionResponse:
    """Mark a pending redemption as handed over."""

    redemption = await RedemptionEngine(db, dispatcher).fulfill(redemption_id)
    return RedemptionResponse.from_view(redemption)


@router.post(
    "/redemptions/{redemption_id}/cancel",
    response_model=CancelRedemptionResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def cancel_redemption(
    redemption_id: UUID,
    request: Optional[CancelRedemptionRequest] = Body(None),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> CancelRedemptionResponse:
    """Cancel a pending redemption, refunding by default."""

    refund = request.refund if request is not None else True
    result = await RedemptionEngine(db, dispatcher).cancel(redemption_id, refund=refund)
    return CancelRedemptionResponse.from_result(result)


@router.get("/{reward_id}", response_model=RewardResponse)
async def get_redeemable_reward(
    reward_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    """Advisory redeemability check; the redeem call re-validates atomically."""

    reward = await RewardCatalog(db).get_redeemable(reward_id)
    return RewardResponse.from_view(reward)


@router.post(
    "/{reward_id}/redeem",
    response_model=RedeemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def redeem_reward(
    reward_id: UUID,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> RedeemResponse:
    result = await RedemptionEngine(db, dispatcher).redeem(current_user.id, reward_id)
    return RedeemResponse.from_result(result)
