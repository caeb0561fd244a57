"""Read access to the sponsor reward catalog."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ecoquest_api.models.reward import RedemptionState, RewardRedemption, Sponsor, SponsorReward
from ecoquest_api.services.economy.clock import ensure_utc, utcnow
from ecoquest_api.services.economy.errors import ExpiredError, NotFoundError, OutOfStockError
from ecoquest_api.services.economy.pagination import Page, PageMeta, normalize_page


@dataclass(frozen=True)
class RewardView:
    id: UUID
    sponsor_id: UUID
    sponsor_name: str | None
    title: str
    description: str | None
    points_cost: int
    quantity: int | None
    redeemed_count: int
    remaining: int | None
    expires_at: datetime | None
    is_active: bool
    display_on_leaderboard: bool

    @classmethod
    def from_model(cls, reward: SponsorReward) -> "RewardView":
        sponsor = reward.__dict__.get("sponsor")
        remaining = None
        if reward.quantity is not None:
            remaining = max(reward.quantity - reward.redeemed_count, 0)
        return cls(
            id=reward.id,
            sponsor_id=reward.sponsor_id,
            sponsor_name=sponsor.name if sponsor is not None else None,
            title=reward.title,
            description=reward.description,
            points_cost=reward.points_cost,
            quantity=reward.quantity,
            redeemed_count=reward.redeemed_count,
            remaining=remaining,
            expires_at=ensure_utc(reward.expires_at),
            is_active=reward.is_active,
            display_on_leaderboard=reward.display_on_leaderboard,
        )


@dataclass(frozen=True)
class CatalogStats:
    sponsors_total: int
    sponsors_active: int
    rewards_total: int
    rewards_active: int
    redemptions_total: int
    redemptions_pending: int
    redemptions_fulfilled: int
    redemptions_cancelled: int

    def as_dict(self) -> dict[str, dict[str, int]]:
        return {
            "sponsors": {"total": self.sponsors_total, "active": self.sponsors_active},
            "rewards": {"total": self.rewards_total, "active": self.rewards_active},
            "redemptions": {
                "total": self.redemptions_total,
                "pending": self.redemptions_pending,
                "fulfilled": self.redemptions_fulfilled,
                "cancelled": self.redemptions_cancelled,
            },
        }


def ensure_redeemable(reward: SponsorReward | None, *, now: datetime | None = None) -> SponsorReward:
    """Raise the first failing precondition: missing/inactive, then expired, then out of stock."""

    if reward is None or not reward.is_active:
        raise NotFoundError("Reward")
    sponsor = reward.__dict__.get("sponsor")
    if sponsor is not None and not sponsor.is_active:
        raise NotFoundError("Reward")

    expires_at = ensure_utc(reward.expires_at)
    if expires_at is not None and expires_at <= (now or utcnow()):
        raise ExpiredError()

    if reward.quantity is not None and reward.redeemed_count >= reward.quantity:
        raise OutOfStockError()
    return reward


def available_clause(now: datetime):
    """SQL condition for rewards that are in stock and not expired."""

    return and_(
        or_(SponsorReward.quantity.is_(None), SponsorReward.quantity > SponsorReward.redeemed_count),
        or_(SponsorReward.expires_at.is_(None), SponsorReward.expires_at > now),
    )


class RewardCatalog:
    """Advisory reads over rewards; the redemption engine re-checks everything inside its transaction."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def load(self, reward_id: UUID, *, refresh: bool = False) -> SponsorReward | None:
        stmt = (
            select(SponsorReward)
            .options(selectinload(SponsorReward.sponsor))
            .where(SponsorReward.id == reward_id)
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def get_redeemable(self, reward_id: UUID) -> RewardView:
        reward = ensure_redeemable(await self.load(reward_id, refresh=True))
        return RewardView.from_model(reward)

    async def list_rewards(
        self,
        page: int | None = None,
        limit: int | None = None,
        *,
        sponsor_id: UUID | None = None,
        active_only: bool = False,
        available_only: bool = False,
    ) -> Page[RewardView]:
        page, limit = normalize_page(page, limit)

        conditions = []
        if sponsor_id is not None:
            conditions.append(SponsorReward.sponsor_id == sponsor_id)
        if active_only:
            conditions.append(SponsorReward.is_active.is_(True))
            conditions.append(Sponsor.is_active.is_(True))
        if available_only:
            conditions.append(available_clause(utcnow()))

        count_stmt = (
            select(func.count())
            .select_from(SponsorReward)
            .join(Sponsor, Sponsor.id == SponsorReward.sponsor_id)
            .where(*conditions)
        )
        total = (await self._db.execute(count_stmt)).scalar_one()

        stmt = (
            select(SponsorReward)
            .join(Sponsor, Sponsor.id == SponsorReward.sponsor_id)
            .options(selectinload(SponsorReward.sponsor))
            .where(*conditions)
            .order_by(SponsorReward.created_at.desc(), SponsorReward.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rewards = (await self._db.execute(stmt)).scalars().all()
        return Page(
            items=[RewardView.from_model(reward) for reward in rewards],
            meta=PageMeta.build(total=int(total), page=page, limit=limit),
        )

    async def stats(self) -> CatalogStats:
        sponsors = (
            await self._db.execute(
                select(
                    func.count(Sponsor.id),
                    func.count(Sponsor.id).filter(Sponsor.is_active.is_(True)),
                )
            )
        ).one()
        rewards = (
            await self._db.execute(
                select(
                    func.count(SponsorReward.id),
                    func.count(SponsorReward.id).filter(SponsorReward.is_active.is_(True)),
                )
            )
        ).one()
        by_status = {
            RedemptionState(status): int(count)
            for status, count in (
                await self._db.execute(
                    select(RewardRedemption.status, func.count(RewardRedemption.id)).group_by(
                        RewardRedemption.status
                    )
                )
            ).all()
        }
        return CatalogStats(
            sponsors_total=int(sponsors[0]),
            sponsors_active=int(sponsors[1]),
            rewards_total=int(rewards[0]),
            rewards_active=int(rewards[1]),
            redemptions_total=sum(by_status.values()),
            redemptions_pending=by_status.get(RedemptionState.PENDING, 0),
            redemptions_fulfilled=by_status.get(RedemptionState.FULFILLED, 0),
            redemptions_cancelled=by_status.get(RedemptionState.CANCELLED, 0),
        )


__all__ = ["CatalogStats", "RewardCatalog", "RewardView", "available_clause", "ensure_redeemable"]
