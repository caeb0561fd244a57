"""Reward redemption, fulfillment and cancellation.

``redeem`` re-validates every precondition inside its own transaction and
then mutates the two contended counters only through conditional updates:
the balance debit (``points >= cost``) and the stock reservation
(``quantity IS NULL OR redeemed_count < quantity``). A zero-row update aborts
the whole unit of work, so no debit survives without a redemption row and no
redemption exists without a debit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ecoquest_api.models.reward import RedemptionState, RewardRedemption, Sponsor, SponsorReward
from ecoquest_api.observability.economy import get_economy_store
from ecoquest_api.services.economy import events
from ecoquest_api.services.economy.balance_store import BalanceStore
from ecoquest_api.services.economy.clock import ensure_utc, utcnow
from ecoquest_api.services.economy.errors import (
    ConflictError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    OutOfStockError,
)
from ecoquest_api.services.economy.pagination import Page, PageMeta, normalize_page
from ecoquest_api.services.economy.state_machine import REDEMPTION_TRANSITIONS
from ecoquest_api.services.economy.transaction import unit_of_work
from ecoquest_api.services.notifications import NotificationDispatcher

from .catalog import RewardCatalog, ensure_redeemable


@dataclass(frozen=True)
class RedemptionView:
    id: UUID
    user_id: UUID
    reward_id: UUID
    reward_title: str | None
    status: RedemptionState
    points_cost: int
    refunded: bool
    claimed_at: datetime | None
    fulfilled_at: datetime | None
    cancelled_at: datetime | None

    @classmethod
    def from_model(cls, redemption: RewardRedemption, *, reward_title: str | None = None) -> "RedemptionView":
        reward = redemption.__dict__.get("reward")
        if reward_title is None and reward is not None:
            reward_title = reward.title
        return cls(
            id=redemption.id,
            user_id=redemption.user_id,
            reward_id=redemption.reward_id,
            reward_title=reward_title,
            status=RedemptionState(redemption.status),
            points_cost=redemption.points_cost,
            refunded=bool(redemption.refunded),
            claimed_at=ensure_utc(redemption.claimed_at),
            fulfilled_at=ensure_utc(redemption.fulfilled_at),
            cancelled_at=ensure_utc(redemption.cancelled_at),
        )


@dataclass(frozen=True)
class RedeemResult:
    redemption: RedemptionView
    balance: int


@dataclass(frozen=True)
class CancelResult:
    redemption: RedemptionView
    refunded: bool
    balance: int | None


class RedemptionEngine:
    """Executes redemptions against the balance store and reward stock."""

    def __init__(
        self,
        db_session: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._db = db_session
        self._catalog = RewardCatalog(db_session)
        self._balances = BalanceStore(db_session)
        self._dispatcher = dispatcher or NotificationDispatcher(db_session)

    async def redeem(self, user_id: UUID, reward_id: UUID) -> RedeemResult:
        async with unit_of_work(self._db, operation="redeem"):
            now = utcnow()
            reward = ensure_redeemable(await self._catalog.load(reward_id, refresh=True), now=now)
            cost = reward.points_cost

            existing = await self._db.execute(
                select(RewardRedemption.id).where(
                    RewardRedemption.user_id == user_id,
                    RewardRedemption.reward_id == reward_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError("You have already redeemed this reward")

            snapshot = await self._balances.get_balance(user_id)
            if snapshot.points < cost:
                raise InsufficientFundsError(available=snapshot.points, required=cost)

            balance = await self._balances.debit(user_id, cost, reason=f"reward:{reward_id}")
            await self._reserve_unit(reward_id)

            redemption = RewardRedemption(
                user_id=user_id,
                reward_id=reward_id,
                status=RedemptionState.PENDING,
                points_cost=cost,
                refunded=False,
                claimed_at=now,
                created_at=now,
                updated_at=now,
            )
            self._db.add(redemption)
            await self._db.flush()
            view = RedemptionView.from_model(redemption, reward_title=reward.title)

        get_economy_store().record_points("debited", cost)
        logger.info(
            "Reward redeemed",
            redemption_id=str(view.id),
            user_id=str(user_id),
            reward_id=str(reward_id),
            points_cost=cost,
            balance=balance,
        )
        await self._dispatcher.publish(
            [
                events.balance_debited(user_id, cost, f"reward:{reward_id}", balance),
                events.redemption_created(view.id, user_id, reward_id, cost),
            ]
        )
        return RedeemResult(redemption=view, balance=balance)

    async def fulfill(self, redemption_id: UUID) -> RedemptionView:
        target = RedemptionState.FULFILLED
        async with unit_of_work(self._db, operation="fulfill"):
            redemption = await self._load_redemption(redemption_id)
            if redemption is None:
                raise NotFoundError("Redemption")
            REDEMPTION_TRANSITIONS.ensure(RedemptionState(redemption.status), target)

            now = utcnow()
            await self._transition(redemption_id, target, fulfilled_at=now, updated_at=now)
            view = RedemptionView.from_model(await self._load_redemption(redemption_id))

        logger.info("Redemption fulfilled", redemption_id=str(redemption_id), user_id=str(view.user_id))
        await self._dispatcher.publish([events.redemption_fulfilled(redemption_id, view.user_id)])
        await self._dispatcher.send_redemption_fulfilled(redemption_id)
        return view

    async def cancel(self, redemption_id: UUID, refund: bool = True) -> CancelResult:
        target = RedemptionState.CANCELLED
        balance: int | None = None
        async with unit_of_work(self._db, operation="cancel"):
            redemption = await self._load_redemption(redemption_id)
            if redemption is None:
                raise NotFoundError("Redemption")
            REDEMPTION_TRANSITIONS.ensure(RedemptionState(redemption.status), target)

            now = utcnow()
            await self._transition(
                redemption_id,
                target,
                cancelled_at=now,
                refunded=refund,
                updated_at=now,
            )
            if refund:
                balance = await self._balances.credit(
                    redemption.user_id,
                    redemption.points_cost,
                    reason=f"refund:{redemption_id}",
                    lifetime=False,
                )
                await self._release_unit(redemption.reward_id)
            view = RedemptionView.from_model(await self._load_redemption(redemption_id))

        amount = view.points_cost if refund else 0
        if refund:
            get_economy_store().record_points("refunded", amount)
        logger.info(
            "Redemption cancelled",
            redemption_id=str(redemption_id),
            user_id=str(view.user_id),
            refunded=refund,
            amount=amount,
        )
        published = [events.redemption_cancelled(redemption_id, view.user_id, refund, amount)]
        if refund and balance is not None:
            published.append(events.balance_credited(view.user_id, amount, f"refund:{redemption_id}", balance))
        await self._dispatcher.publish(published)
        return CancelResult(redemption=view, refunded=refund, balance=balance)

    async def list_redemptions(
        self,
        page: int | None = None,
        limit: int | None = None,
        *,
        user_id: UUID | None = None,
        status: RedemptionState | None = None,
    ) -> Page[RedemptionView]:
        page, limit = normalize_page(page, limit)
        conditions = []
        if user_id is not None:
            conditions.append(RewardRedemption.user_id == user_id)
        if status is not None:
            conditions.append(RewardRedemption.status == status)

        total = (
            await self._db.execute(select(func.count()).select_from(RewardRedemption).where(*conditions))
        ).scalar_one()
        stmt = (
            select(RewardRedemption)
            .options(selectinload(RewardRedemption.reward))
            .where(*conditions)
            .order_by(RewardRedemption.claimed_at.desc(), RewardRedemption.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        redemptions = (await self._db.execute(stmt)).scalars().all()
        return Page(
            items=[RedemptionView.from_model(redemption) for redemption in redemptions],
            meta=PageMeta.build(total=int(total), page=page, limit=limit),
        )

    async def _reserve_unit(self, reward_id: UUID) -> None:
        sponsor_active = (
            select(Sponsor.id)
            .where(Sponsor.id == SponsorReward.sponsor_id, Sponsor.is_active.is_(True))
            .exists()
        )
        result = await self._db.execute(
            update(SponsorReward)
            .where(
                SponsorReward.id == reward_id,
                SponsorReward.is_active.is_(True),
                sponsor_active,
                (SponsorReward.quantity.is_(None)) | (SponsorReward.redeemed_count < SponsorReward.quantity),
            )
            .values(redeemed_count=SponsorReward.redeemed_count + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # the reward or its sponsor changed after the precondition check
            ensure_redeemable(await self._catalog.load(reward_id, refresh=True))
            raise OutOfStockError()

    async def _release_unit(self, reward_id: UUID) -> None:
        result = await self._db.execute(
            update(SponsorReward)
            .where(SponsorReward.id == reward_id, SponsorReward.redeemed_count > 0)
            .values(redeemed_count=SponsorReward.redeemed_count - 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("Redeemed count already at zero on refund", reward_id=str(reward_id))

    async def _load_redemption(self, redemption_id: UUID) -> RewardRedemption | None:
        stmt = (
            select(RewardRedemption)
            .options(selectinload(RewardRedemption.reward))
            .where(RewardRedemption.id == redemption_id)
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _transition(self, redemption_id: UUID, target: RedemptionState, **values: object) -> None:
        sources = REDEMPTION_TRANSITIONS.sources_for(target)
        result = await self._db.execute(
            update(RewardRedemption)
            .where(RewardRedemption.id == redemption_id, RewardRedemption.status.in_(sources))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = (
                await self._db.execute(
                    select(RewardRedemption.status).where(RewardRedemption.id == redemption_id)
                )
            ).scalar_one_or_none()
            raise InvalidStateError(
                REDEMPTION_TRANSITIONS.entity,
                RedemptionState(current).value if current is not None else "missing",
                target.value,
            )


__all__ = ["CancelResult", "RedeemResult", "RedemptionEngine", "RedemptionView"]
