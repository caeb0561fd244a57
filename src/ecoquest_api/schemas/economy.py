"""Response models for the points economy endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ecoquest_api.services.challenges import AttemptView, LeaderboardEntry, VerificationResult
from ecoquest_api.services.economy.balance_store import BalanceSnapshot
from ecoquest_api.services.rewards import RedeemResult, RedemptionView, RewardView, CancelResult

from .pagination import PageMetaResponse


class BalanceResponse(BaseModel):
    userId: UUID
    points: int
    lifetimePoints: int

    @classmethod
    def from_snapshot(cls, snapshot: BalanceSnapshot) -> "BalanceResponse":
        return cls(userId=snapshot.user_id, points=snapshot.points, lifetimePoints=snapshot.lifetime_points)


class AttemptResponse(BaseModel):
    id: UUID
    userId: UUID
    challengeId: UUID
    challengeTitle: Optional[str]
    status: str
    pointsAwarded: int
    proofUrl: Optional[str]
    adminNotes: Optional[str]
    completedAt: Optional[datetime]
    verifiedAt: Optional[datetime]
    verifiedById: Optional[UUID]
    createdAt: Optional[datetime]

    @classmethod
    def from_view(cls, view: AttemptView) -> "AttemptResponse":
        return cls(
            id=view.id,
            userId=view.user_id,
            challengeId=view.challenge_id,
            challengeTitle=view.challenge_title,
            status=view.status.value,
            pointsAwarded=view.points_awarded,
            proofUrl=view.proof_url,
            adminNotes=view.admin_notes,
            completedAt=view.completed_at,
            verifiedAt=view.verified_at,
            verifiedById=view.verified_by_id,
            createdAt=view.created_at,
        )


class CompleteAttemptRequest(BaseModel):
    proofUrl: Optional[str] = Field(None, description="Absolute http(s) URL or /uploads/ path of the proof image")


class VerifyAttemptRequest(BaseModel):
    adminId: UUID = Field(..., description="Admin user performing the review")
    approved: bool = Field(..., description="Approve to award the challenge points")
    notes: Optional[str] = Field(None, max_length=2000, description="Reviewer notes shown to the user")


class VerificationResponse(BaseModel):
    attempt: AttemptResponse
    approved: bool
    pointsAwarded: int
    balance: Optional[int]

    @classmethod
    def from_result(cls, result: VerificationResult) -> "VerificationResponse":
        return cls(
            attempt=AttemptResponse.from_view(result.attempt),
            approved=result.approved,
            pointsAwarded=result.points_awarded,
            balance=result.balance,
        )


class PendingVerificationsResponse(BaseModel):
    data: List[AttemptResponse]
    meta: PageMetaResponse


class LeaderboardEntryResponse(BaseModel):
    rank: int
    userId: UUID
    displayName: Optional[str]
    challengeId: UUID
    challengeTitle: str
    pointsAwarded: int
    completedAt: Optional[datetime]
    verifiedAt: Optional[datetime]

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardEntryResponse":
        return cls(
            rank=entry.rank,
            userId=entry.user_id,
            displayName=entry.display_name,
            challengeId=entry.challenge_id,
            challengeTitle=entry.challenge_title,
            pointsAwarded=entry.points_awarded,
            completedAt=entry.completed_at,
            verifiedAt=entry.verified_at,
        )


class RewardResponse(BaseModel):
    id: UUID
    sponsorId: UUID
    sponsorName: Optional[str]
    title: str
    description: Optional[str]
    pointsCost: int
    quantity: Optional[int]
    redeemedCount: int
    remaining: Optional[int]
    expiresAt: Optional[datetime]
    isActive: bool
    displayOnLeaderboard: bool

    @classmethod
    def from_view(cls, view: RewardView) -> "RewardResponse":
        return cls(
            id=view.id,
            sponsorId=view.sponsor_id,
            sponsorName=view.sponsor_name,
            title=view.title,
            description=view.description,
            pointsCost=view.points_cost,
            quantity=view.quantity,
            redeemedCount=view.redeemed_count,
            remaining=view.remaining,
            expiresAt=view.expires_at,
            isActive=view.is_active,
            displayOnLeaderboard=view.display_on_leaderboard,
        )


class RewardListResponse(BaseModel):
    data: List[RewardResponse]
    meta: PageMetaResponse


class RedemptionResponse(BaseModel):
    id: UUID
    userId: UUID
    rewardId: UUID
    rewardTitle: Optional[str]
    status: str
    pointsCost: int
    refunded: bool
    claimedAt: Optional[datetime]
    fulfilledAt: Optional[datetime]
    cancelledAt: Optional[datetime]

    @classmethod
    def from_view(cls, view: RedemptionView) -> "RedemptionResponse":
        return cls(
            id=view.id,
            userId=view.user_id,
            rewardId=view.reward_id,
            rewardTitle=view.reward_title,
            status=view.status.value,
            pointsCost=view.points_cost,
            refunded=view.refunded,
            claimedAt=view.claimed_at,
            fulfilledAt=view.fulfilled_at,
            cancelledAt=view.cancelled_at,
        )


class RedemptionListResponse(BaseModel):
    data: List[RedemptionResponse]
    meta: PageMetaResponse


class RedeemResponse(BaseModel):
    redemption: RedemptionResponse
    balance: int

    @classmethod
    def from_result(cls, result: RedeemResult) -> "RedeemResponse":
        return cls(redemption=RedemptionResponse.from_view(result.redemption), balance=result.balance)


class CancelRedemptionRequest(BaseModel):
    refund: bool = Field(True, description="Return the captured points and release the reserved unit")


class CancelRedemptionResponse(BaseModel):
    redemption: RedemptionResponse
    refunded: bool
    balance: Optional[int]

    @classmethod
    def from_result(cls, result: CancelResult) -> "CancelRedemptionResponse":
        return cls(
            redemption=RedemptionResponse.from_view(result.redemption),
            refunded=result.refunded,
            balance=result.balance,
        )


class CatalogStatsResponse(BaseModel):
    sponsors: dict[str, int]
    rewards: dict[str, int]
    redemptions: dict[str, int]
