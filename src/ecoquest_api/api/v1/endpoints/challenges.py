"""API endpoints for the eco-challenge attempt lifecycle."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.api.dependencies.notifications import get_dispatcher
from ecoquest_api.api.dependencies.security import require_admin_api_key
from ecoquest_api.api.dependencies.session import require_member_session
from ecoquest_api.core.settings import settings
from ecoquest_api.db.session import get_session
from ecoquest_api.models.challenge import ChallengeAttemptState
from ecoquest_api.models.user import User
from ecoquest_api.schemas.economy import (
    AttemptResponse,
    CompleteAttemptRequest,
    LeaderboardEntryResponse,
    PendingVerificationsResponse,
    VerificationResponse,
    VerifyAttemptRequest,
)
from ecoquest_api.schemas.pagination import PageMetaResponse
from ecoquest_api.services.challenges import ChallengeLifecycleManager
from ecoquest_api.services.notifications import NotificationDispatcher


router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.get("/attempts", response_model=List[AttemptResponse])
async def list_my_attempts(
    status_filter: Optional[ChallengeAttemptState] = Query(None, alias="status"),
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> List[AttemptResponse]:
    """Return the caller's attempts, newest first."""

    manager = ChallengeLifecycleManager(db)
    attempts = await manager.list_attempts(current_user.id, status=status_filter)
    return [AttemptResponse.from_view(attempt) for attempt in attempts]


@router.get(
    "/attempts/pending",
    response_model=PendingVerificationsResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def list_pending_verifications(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    db: AsyncSession = Depends(get_session),
) -> PendingVerificationsResponse:
    """Completed attempts awaiting review, oldest first."""

    result = await ChallengeLifecycleManager(db).list_pending_verifications(page, limit)
    return PendingVerificationsResponse(
        data=[AttemptResponse.from_view(attempt) for attempt in result.items],
        meta=PageMetaResponse.from_meta(result.meta),
    )


@router.get("/leaderboard", response_model=List[LeaderboardEntryResponse])
async def get_leaderboard(
    challenge_id: Optional[UUID] = Query(None, alias="challengeId"),
    limit: int = Query(10, ge=1, le=settings.leaderboard_max_limit),
    db: AsyncSession = Depends(get_session),
) -> List[LeaderboardEntryResponse]:
    entries = await ChallengeLifecycleManager(db).leaderboard(challenge_id, limit)
    return [LeaderboardEntryResponse.from_entry(entry) for entry in entries]


@router.post(
    "/{challenge_id}/join",
    response_model=AttemptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_challenge(
    challenge_id: UUID,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AttemptResponse:
    attempt = await ChallengeLifecycleManager(db, dispatcher).join(current_user.id, challenge_id)
    return AttemptResponse.from_view(attempt)


@router.post("/attempts/{attempt_id}/complete", response_model=AttemptResponse)
async def complete_attempt(
    attempt_id: UUID,
    request: CompleteAttemptRequest,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AttemptResponse:
    """Submit proof and move the attempt to review."""

    attempt = await ChallengeLifecycleManager(db, dispatcher).complete(
        attempt_id,
        current_user.id,
        request.proofUrl,
    )
    return AttemptResponse.from_view(attempt)


@router.post(
    "/attempts/{attempt_id}/verify",
    response_model=VerificationResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def verify_attempt(
    attempt_id: UUID,
    request: VerifyAttemptRequest,
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> VerificationResponse:
    """Approve or reject a completed attempt; approval credits the challenge points."""

    result = await ChallengeLifecycleManager(db, dispatcher).verify(
        attempt_id,
        request.adminId,
        request.approved,
        request.notes,
    )
    return VerificationResponse.from_result(result)
