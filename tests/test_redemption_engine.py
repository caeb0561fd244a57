import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update

from ecoquest_api.models import RedemptionState, RewardRedemption, Sponsor, SponsorReward
from ecoquest_api.observability.economy import get_economy_store
from ecoquest_api.services.economy import (
    BalanceStore,
    ConflictError,
    ExpiredError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    OutOfStockError,
)
from ecoquest_api.services.notifications import NotificationDispatcher
from ecoquest_api.services.rewards import RedemptionEngine


async def _redemption_count(session) -> int:
    return (await session.execute(select(func.count()).select_from(RewardRedemption))).scalar_one()


@pytest.mark.asyncio
async def test_redeem_debits_reserves_and_records(session_factory, seed, dispatcher_factory, event_sink) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "member@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60, quantity=1)
        await session.commit()

        engine = RedemptionEngine(session, dispatcher_factory(session))
        result = await engine.redeem(user.id, reward.id)

        await session.refresh(reward)
        balance = await BalanceStore(session).get_balance(user.id)

    assert result.balance == 40
    assert balance.points == 40
    assert reward.redeemed_count == 1
    assert result.redemption.status == RedemptionState.PENDING
    assert result.redemption.points_cost == 60
    assert result.redemption.claimed_at is not None
    assert event_sink.types() == ["balance.debited", "redemption.created"]
    assert event_sink.events[1].payload["pointsCost"] == 60
    snapshot = get_economy_store().snapshot()
    assert snapshot.operations["redeem"] == {"succeeded": 1}
    assert snapshot.points["debited"] == 60


@pytest.mark.asyncio
async def test_redeem_with_insufficient_points_mutates_nothing(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "poor@example.com")
        await seed.balance(session, user.id, 30)
        reward = await seed.reward(session, points_cost=60, quantity=3)
        await session.commit()
        user_id, reward_id = user.id, reward.id

        engine = RedemptionEngine(session, dispatcher_factory(session))
        with pytest.raises(InsufficientFundsError, match="You have 30, need 60"):
            await engine.redeem(user_id, reward_id)

        await session.refresh(reward)
        balance = await BalanceStore(session).get_balance(user_id)
        count = await _redemption_count(session)

    assert balance.points == 30
    assert reward.redeemed_count == 0
    assert count == 0
    assert get_economy_store().snapshot().operations["redeem"] == {"insufficient_funds": 1}


@pytest.mark.asyncio
async def test_redeem_precondition_failures(session_factory, seed, dispatcher_factory) -> None:
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    async with session_factory() as session:
        user = await seed.user(session, "member@example.com")
        await seed.balance(session, user.id, 500)
        sponsor = await seed.sponsor(session)
        expired = await seed.reward(session, sponsor=sponsor, title="Expired", expires_at=past)
        sold_out = await seed.reward(session, sponsor=sponsor, title="Sold out", quantity=2, redeemed_count=2)
        inactive = await seed.reward(session, sponsor=sponsor, title="Inactive", is_active=False)
        await session.commit()
        user_id = user.id
        expired_id, sold_out_id, inactive_id = expired.id, sold_out.id, inactive.id

        engine = RedemptionEngine(session, dispatcher_factory(session))
        with pytest.raises(ExpiredError):
            await engine.redeem(user_id, expired_id)
        with pytest.raises(OutOfStockError):
            await engine.redeem(user_id, sold_out_id)
        with pytest.raises(NotFoundError):
            await engine.redeem(user_id, inactive_id)
        with pytest.raises(NotFoundError):
            await engine.redeem(user_id, uuid.uuid4())

        balance = await BalanceStore(session).get_balance(user_id)

    assert balance.points == 500


class _SponsorPausedMidRedeem(RedemptionEngine):
    def __init__(self, db_session, dispatcher, sponsor_id) -> None:
        super().__init__(db_session, dispatcher)
        self._sponsor_id = sponsor_id

    async def _reserve_unit(self, reward_id) -> None:
        await self._db.execute(
            update(Sponsor)
            .where(Sponsor.id == self._sponsor_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        await super()._reserve_unit(reward_id)


@pytest.mark.asyncio
async def test_reserve_refuses_reward_whose_sponsor_was_deactivated(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "late@example.com")
        await seed.balance(session, user.id, 100)
        sponsor = await seed.sponsor(session)
        reward = await seed.reward(session, sponsor=sponsor, points_cost=60, quantity=5)
        await session.commit()
        user_id, reward_id, sponsor_id = user.id, reward.id, sponsor.id

        engine = _SponsorPausedMidRedeem(session, dispatcher_factory(session), sponsor_id)
        with pytest.raises(NotFoundError):
            await engine.redeem(user_id, reward_id)

        stored = await session.get(SponsorReward, reward_id, populate_existing=True)
        paused = await session.get(Sponsor, sponsor_id, populate_existing=True)
        balance = await BalanceStore(session).get_balance(user_id)
        count = await _redemption_count(session)

    assert stored.redeemed_count == 0
    assert paused.is_active is True
    assert balance.points == 100
    assert count == 0


@pytest.mark.asyncio
async def test_second_redemption_of_same_reward_conflicts_even_after_cancel(
    session_factory, seed, dispatcher_factory
) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "repeat@example.com")
        await seed.balance(session, user.id, 300)
        reward = await seed.reward(session, points_cost=50)
        await session.commit()
        user_id, reward_id = user.id, reward.id

        engine = RedemptionEngine(session, dispatcher_factory(session))
        first = await engine.redeem(user_id, reward_id)
        with pytest.raises(ConflictError, match="already redeemed"):
            await engine.redeem(user_id, reward_id)

        await engine.cancel(first.redemption.id, refund=True)
        with pytest.raises(ConflictError):
            await engine.redeem(user_id, reward_id)

        balance = await BalanceStore(session).get_balance(user_id)

    assert balance.points == 300


@pytest.mark.asyncio
async def test_cancel_with_refund_round_trips(session_factory, seed, dispatcher_factory, event_sink) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "roundtrip@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60, quantity=1)
        await session.commit()

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user.id, reward.id)
        cancelled = await engine.cancel(redeemed.redemption.id)

        await session.refresh(reward)
        balance = await BalanceStore(session).get_balance(user.id)

    assert cancelled.refunded is True
    assert cancelled.balance == 100
    assert cancelled.redemption.status == RedemptionState.CANCELLED
    assert cancelled.redemption.cancelled_at is not None
    assert balance.points == 100
    assert balance.lifetime_points == 100
    assert reward.redeemed_count == 0
    assert event_sink.types()[-2:] == ["redemption.cancelled", "balance.credited"]
    assert event_sink.events[-2].payload == {
        "redemptionId": str(redeemed.redemption.id),
        "userId": str(user.id),
        "refunded": True,
        "amount": 60,
    }


@pytest.mark.asyncio
async def test_refund_uses_cost_captured_at_redemption(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "captured@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60)
        await session.commit()

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user.id, reward.id)

        reward.points_cost = 90
        await session.commit()

        cancelled = await engine.cancel(redeemed.redemption.id)

    assert cancelled.balance == 100


@pytest.mark.asyncio
async def test_cancel_without_refund_keeps_points_and_stock(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "norefund@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60, quantity=2)
        await session.commit()

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user.id, reward.id)
        cancelled = await engine.cancel(redeemed.redemption.id, refund=False)

        await session.refresh(reward)
        balance = await BalanceStore(session).get_balance(user.id)

    assert cancelled.refunded is False
    assert cancelled.balance is None
    assert balance.points == 40
    assert reward.redeemed_count == 1


@pytest.mark.asyncio
async def test_refund_never_drives_redeemed_count_negative(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "drift@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60, quantity=1)
        await session.commit()
        user_id, reward_id = user.id, reward.id

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user_id, reward_id)

        # stock corrected by hand after the redemption was taken
        await session.execute(
            update(SponsorReward)
            .where(SponsorReward.id == reward_id)
            .values(redeemed_count=0)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        cancelled = await engine.cancel(redeemed.redemption.id, refund=True)

        await session.refresh(reward)
        balance = await BalanceStore(session).get_balance(user_id)

    assert cancelled.refunded is True
    assert cancelled.balance == 100
    assert cancelled.redemption.status == RedemptionState.CANCELLED
    assert balance.points == 100
    assert reward.redeemed_count == 0
    assert get_economy_store().snapshot().operations["cancel"] == {"succeeded": 1}


@pytest.mark.asyncio
async def test_fulfilled_redemption_cannot_be_cancelled(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "done@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60)
        await session.commit()
        user_id, reward_id = user.id, reward.id

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user_id, reward_id)
        fulfilled = await engine.fulfill(redeemed.redemption.id)

        assert fulfilled.status == RedemptionState.FULFILLED
        assert fulfilled.fulfilled_at is not None

        with pytest.raises(InvalidStateError):
            await engine.cancel(redeemed.redemption.id)
        with pytest.raises(InvalidStateError):
            await engine.fulfill(redeemed.redemption.id)

        balance = await BalanceStore(session).get_balance(user_id)

    assert balance.points == 40


@pytest.mark.asyncio
async def test_cancelled_redemption_cannot_be_cancelled_or_fulfilled(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "twice@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60)
        await session.commit()
        user_id, reward_id = user.id, reward.id

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user_id, reward_id)
        await engine.cancel(redeemed.redemption.id)

        with pytest.raises(InvalidStateError):
            await engine.cancel(redeemed.redemption.id)
        with pytest.raises(InvalidStateError):
            await engine.fulfill(redeemed.redemption.id)
        with pytest.raises(NotFoundError):
            await engine.fulfill(uuid.uuid4())

        balance = await BalanceStore(session).get_balance(user_id)

    assert balance.points == 100


@pytest.mark.asyncio
async def test_fulfill_sends_email(session_factory, seed, dispatcher_factory, email_backend) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "winner@example.com", display_name="Sam")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, title="Cinema ticket", points_cost=80)
        await session.commit()

        engine = RedemptionEngine(session, dispatcher_factory(session))
        redeemed = await engine.redeem(user.id, reward.id)
        await engine.fulfill(redeemed.redemption.id)

    assert len(email_backend.sent_messages) == 1
    message = email_backend.sent_messages[0]
    assert message["To"] == "winner@example.com"
    assert message["Subject"] == "Your reward is ready: Cinema ticket"


class _FailingSink:
    async def publish(self, events) -> None:
        raise ConnectionError("redis unavailable")


class _FailingEmailBackend:
    async def send_email(self, recipient, subject, body_text, *, body_html=None, reply_to=None) -> None:
        raise OSError("smtp down")


@pytest.mark.asyncio
async def test_notification_failures_never_undo_the_operation(session_factory, seed) -> None:
    async with session_factory() as session:
        user = await seed.user(session, "resilient@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60, quantity=1)
        await session.commit()

        dispatcher = NotificationDispatcher(session, sink=_FailingSink(), email_backend=_FailingEmailBackend())
        engine = RedemptionEngine(session, dispatcher)
        redeemed = await engine.redeem(user.id, reward.id)
        fulfilled = await engine.fulfill(redeemed.redemption.id)

        await session.refresh(reward)
        balance = await BalanceStore(session).get_balance(user.id)

    assert fulfilled.status == RedemptionState.FULFILLED
    assert balance.points == 40
    assert reward.redeemed_count == 1
    notifications = get_economy_store().snapshot().notifications
    assert notifications["failed"] == 2
    assert notifications["email_failed"] == 1


@pytest.mark.asyncio
async def test_list_redemptions_filters_and_orders(session_factory, seed, dispatcher_factory) -> None:
    async with session_factory() as session:
        first_user = await seed.user(session, "first@example.com")
        second_user = await seed.user(session, "second@example.com")
        await seed.balance(session, first_user.id, 500)
        await seed.balance(session, second_user.id, 500)
        sponsor = await seed.sponsor(session)
        rewards = [await seed.reward(session, sponsor=sponsor, title=f"Reward {index}", points_cost=50) for index in range(3)]
        await session.commit()

        engine = RedemptionEngine(session, dispatcher_factory(session))
        older = await engine.redeem(first_user.id, rewards[0].id)
        newer = await engine.redeem(first_user.id, rewards[1].id)
        await engine.redeem(second_user.id, rewards[2].id)
        await engine.fulfill(older.redemption.id)

        mine = await engine.list_redemptions(user_id=first_user.id)
        pending = await engine.list_redemptions(status=RedemptionState.PENDING)

    assert [item.id for item in mine.items] == [newer.redemption.id, older.redemption.id]
    assert mine.items[0].reward_title == "Reward 1"
    assert pending.meta.total == 2
