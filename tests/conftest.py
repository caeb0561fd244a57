import sys
from datetime import datetime
from pathlib import Path
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from ecoquest_api.app import create_app  # noqa: E402
from ecoquest_api.db.base import Base  # noqa: E402
from ecoquest_api.db.session import build_engine, get_session  # noqa: E402
from ecoquest_api.models import (  # noqa: E402
    EcoChallenge,
    MaterialType,
    PointsBalance,
    Sponsor,
    SponsorReward,
    User,
)
from ecoquest_api.observability.economy import get_economy_store  # noqa: E402
from ecoquest_api.services.notifications import (  # noqa: E402
    InMemoryEmailBackend,
    InMemoryEventPublisher,
    NotificationDispatcher,
)


async def _build_factory(url: str):
    engine = build_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _build_factory("sqlite+aiosqlite:///:memory:")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""

    engine, factory = await _build_factory(f"sqlite+aiosqlite:///{tmp_path / 'economy.db'}")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture(autouse=True)
def reset_economy_store():
    get_economy_store().reset()
    yield
    get_economy_store().reset()


@pytest.fixture
def event_sink() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def email_backend() -> InMemoryEmailBackend:
    return InMemoryEmailBackend()


@pytest.fixture
def dispatcher_factory(event_sink, email_backend):
    def _build(session: AsyncSession) -> NotificationDispatcher:
        return NotificationDispatcher(session, sink=event_sink, email_backend=email_backend)

    return _build


class EconomySeed:
    """Inserts catalog rows and balances the way admin tooling would."""

    async def user(self, session: AsyncSession, email: str, display_name: str | None = None) -> User:
        user = User(email=email, display_name=display_name)
        session.add(user)
        await session.flush()
        return user

    async def balance(self, session: AsyncSession, user_id: UUID, points: int) -> PointsBalance:
        balance = PointsBalance(user_id=user_id, points=points, lifetime_points=points)
        session.add(balance)
        await session.flush()
        return balance

    async def challenge(
        self,
        session: AsyncSession,
        *,
        title: str = "Collect 10 bottles",
        points_reward: int = 50,
        is_active: bool = True,
    ) -> EcoChallenge:
        challenge = EcoChallenge(
            title=title,
            points_reward=points_reward,
            material_type=MaterialType.PLASTIC,
            is_active=is_active,
        )
        session.add(challenge)
        await session.flush()
        return challenge

    async def sponsor(self, session: AsyncSession, *, name: str = "GreenCo", is_active: bool = True) -> Sponsor:
        sponsor = Sponsor(name=name, is_active=is_active, contact_email="rewards@greenco.test")
        session.add(sponsor)
        await session.flush()
        return sponsor

    async def reward(
        self,
        session: AsyncSession,
        *,
        sponsor: Sponsor | None = None,
        title: str = "Reusable bottle",
        points_cost: int = 60,
        quantity: int | None = None,
        redeemed_count: int = 0,
        expires_at: datetime | None = None,
        is_active: bool = True,
    ) -> SponsorReward:
        if sponsor is None:
            sponsor = await self.sponsor(session)
        reward = SponsorReward(
            sponsor_id=sponsor.id,
            title=title,
            points_cost=points_cost,
            quantity=quantity,
            redeemed_count=redeemed_count,
            expires_at=expires_at,
            is_active=is_active,
        )
        session.add(reward)
        await session.flush()
        return reward


@pytest.fixture
def seed() -> EconomySeed:
    return EconomySeed()


@pytest_asyncio.fixture
async def app_with_db(session_factory, event_sink, email_backend):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.state.notification_sink = event_sink
    app.state.email_backend = email_backend

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
