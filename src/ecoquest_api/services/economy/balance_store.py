"""Guarded point balance mutations.

Both primitives run inside the caller's transaction and never commit. Debits
are a single conditional ``UPDATE ... WHERE points >= :amount`` so concurrent
callers cannot overdraw a balance; credits are an atomic upsert.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.models.points import PointsBalance

from .errors import InsufficientFundsError, ValidationError


@dataclass(frozen=True)
class BalanceSnapshot:
    user_id: UUID
    points: int
    lifetime_points: int


class BalanceStore:
    """The only code path allowed to change ``points_balances``."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_balance(self, user_id: UUID) -> BalanceSnapshot:
        stmt = select(PointsBalance.points, PointsBalance.lifetime_points).where(
            PointsBalance.user_id == user_id
        )
        row = (await self._db.execute(stmt)).one_or_none()
        if row is None:
            return BalanceSnapshot(user_id=user_id, points=0, lifetime_points=0)
        return BalanceSnapshot(user_id=user_id, points=int(row.points), lifetime_points=int(row.lifetime_points))

    async def credit(self, user_id: UUID, amount: int, *, reason: str, lifetime: bool = True) -> int:
        """Add ``amount`` points, creating the balance row when missing. Returns the new balance.

        Refunds pass ``lifetime=False`` so returned points are not counted as earned twice.
        """

        _require_positive(amount)
        earned = amount if lifetime else 0
        insert = self._dialect_insert()
        stmt = insert(PointsBalance).values(
            id=uuid4(),
            user_id=user_id,
            points=amount,
            lifetime_points=earned,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PointsBalance.user_id],
            set_={
                "points": PointsBalance.points + stmt.excluded.points,
                "lifetime_points": PointsBalance.lifetime_points + stmt.excluded.lifetime_points,
                "updated_at": func.now(),
            },
        )
        await self._db.execute(stmt)

        balance = await self._current_points(user_id)
        logger.info("Credited points", user_id=str(user_id), amount=amount, reason=reason, balance=balance)
        return balance

    async def debit(self, user_id: UUID, amount: int, *, reason: str) -> int:
        """Remove ``amount`` points or raise ``InsufficientFundsError``. Returns the new balance."""

        _require_positive(amount)
        stmt = (
            update(PointsBalance)
            .where(PointsBalance.user_id == user_id, PointsBalance.points >= amount)
            .values(points=PointsBalance.points - amount, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        if result.rowcount != 1:
            available = await self._current_points(user_id)
            logger.info(
                "Rejected debit for insufficient points",
                user_id=str(user_id),
                amount=amount,
                available=available,
                reason=reason,
            )
            raise InsufficientFundsError(available=available, required=amount)

        balance = await self._current_points(user_id)
        logger.info("Debited points", user_id=str(user_id), amount=amount, reason=reason, balance=balance)
        return balance

    async def _current_points(self, user_id: UUID) -> int:
        stmt = select(PointsBalance.points).where(PointsBalance.user_id == user_id)
        points = (await self._db.execute(stmt)).scalar_one_or_none()
        return int(points or 0)

    def _dialect_insert(self):
        dialect = self._db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise NotImplementedError(f"Balance upserts are not supported on the {dialect} dialect")


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Point amounts must be positive integers")


__all__ = ["BalanceSnapshot", "BalanceStore"]
