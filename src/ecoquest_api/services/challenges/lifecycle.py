"""Join, complete and verify flow for eco-challenge attempts.

Verification is the single place points enter circulation, so every state
change is a conditional ``UPDATE ... WHERE status IN (...)``; a retried or
concurrent verify on an already resolved attempt matches zero rows and fails
with ``InvalidStateError`` instead of crediting twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import urlsplit
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ecoquest_api.core.settings import settings
from ecoquest_api.models.challenge import ChallengeAttempt, ChallengeAttemptState, EcoChallenge
from ecoquest_api.models.user import User
from ecoquest_api.observability.economy import get_economy_store
from ecoquest_api.services.economy import events
from ecoquest_api.services.economy.balance_store import BalanceStore
from ecoquest_api.services.economy.clock import ensure_utc, utcnow
from ecoquest_api.services.economy.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ecoquest_api.services.economy.pagination import Page, PageMeta, normalize_page
from ecoquest_api.services.economy.state_machine import ATTEMPT_TRANSITIONS
from ecoquest_api.services.economy.transaction import unit_of_work
from ecoquest_api.services.notifications import NotificationDispatcher


@dataclass(frozen=True)
class AttemptView:
    id: UUID
    user_id: UUID
    challenge_id: UUID
    challenge_title: str | None
    status: ChallengeAttemptState
    points_awarded: int
    proof_url: str | None
    admin_notes: str | None
    completed_at: datetime | None
    verified_at: datetime | None
    verified_by_id: UUID | None
    created_at: datetime | None

    @classmethod
    def from_model(cls, attempt: ChallengeAttempt, *, challenge_title: str | None = None) -> "AttemptView":
        # only read the relationship when it was eagerly loaded
        challenge = attempt.__dict__.get("challenge")
        if challenge_title is None and challenge is not None:
            challenge_title = challenge.title
        return cls(
            id=attempt.id,
            user_id=attempt.user_id,
            challenge_id=attempt.challenge_id,
            challenge_title=challenge_title,
            status=ChallengeAttemptState(attempt.status),
            points_awarded=attempt.points_awarded or 0,
            proof_url=attempt.proof_url,
            admin_notes=attempt.admin_notes,
            completed_at=ensure_utc(attempt.completed_at),
            verified_at=ensure_utc(attempt.verified_at),
            verified_by_id=attempt.verified_by_id,
            created_at=ensure_utc(attempt.created_at),
        )


@dataclass(frozen=True)
class VerificationResult:
    attempt: AttemptView
    approved: bool
    points_awarded: int
    balance: int | None


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: UUID
    display_name: str | None
    challenge_id: UUID
    challenge_title: str
    points_awarded: int
    completed_at: datetime | None
    verified_at: datetime | None


def validate_proof_url(proof_url: str | None) -> str | None:
    """Accept an absolute http(s) URL or a path under ``/uploads/``."""

    if proof_url is None:
        return None
    candidate = proof_url.strip()
    if not candidate:
        return None
    if candidate.startswith("/uploads/"):
        return candidate
    parts = urlsplit(candidate)
    if parts.scheme in {"http", "https"} and parts.netloc:
        return candidate
    raise ValidationError("Proof must be an http(s) URL or an /uploads/ path")


class ChallengeLifecycleManager:
    """Drive a user's attempt through join -> complete -> verify."""

    def __init__(
        self,
        db_session: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._db = db_session
        self._dispatcher = dispatcher or NotificationDispatcher(db_session)

    async def join(self, user_id: UUID, challenge_id: UUID) -> AttemptView:
        async with unit_of_work(self._db, operation="challenge.join"):
            challenge = await self._db.get(EcoChallenge, challenge_id)
            if challenge is None or not challenge.is_active:
                raise NotFoundError("Challenge")

            existing = await self._db.execute(
                select(ChallengeAttempt.id).where(
                    ChallengeAttempt.user_id == user_id,
                    ChallengeAttempt.challenge_id == challenge_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError("You have already joined this challenge")

            now = utcnow()
            attempt = ChallengeAttempt(
                user_id=user_id,
                challenge_id=challenge_id,
                status=ChallengeAttemptState.IN_PROGRESS,
                points_awarded=0,
                created_at=now,
                updated_at=now,
            )
            self._db.add(attempt)
            await self._db.flush()
            view = AttemptView.from_model(attempt, challenge_title=challenge.title)

        logger.info("Challenge joined", attempt_id=str(view.id), user_id=str(user_id), challenge_id=str(challenge_id))
        await self._dispatcher.publish([events.challenge_joined(view.id, user_id, challenge_id)])
        return view

    async def complete(self, attempt_id: UUID, user_id: UUID, proof_url: str | None = None) -> AttemptView:
        """Mark an attempt ready for review. No points are awarded here."""

        proof = validate_proof_url(proof_url)
        target = ChallengeAttemptState.COMPLETED
        async with unit_of_work(self._db, operation="challenge.complete"):
            attempt = await self._load_attempt(attempt_id)
            if attempt is None or attempt.user_id != user_id:
                raise NotFoundError("Challenge attempt")
            ATTEMPT_TRANSITIONS.ensure(ChallengeAttemptState(attempt.status), target)

            now = utcnow()
            await self._transition(
                attempt_id,
                target,
                proof_url=proof,
                completed_at=now,
                updated_at=now,
            )
            view = AttemptView.from_model(await self._load_attempt(attempt_id))

        logger.info("Challenge completed", attempt_id=str(attempt_id), user_id=str(user_id))
        await self._dispatcher.publish([events.challenge_completed(attempt_id, user_id, view.challenge_id)])
        return view

    async def verify(
        self,
        attempt_id: UUID,
        admin_id: UUID,
        approved: bool,
        notes: str | None = None,
    ) -> VerificationResult:
        target = ChallengeAttemptState.VERIFIED if approved else ChallengeAttemptState.REJECTED
        balance: int | None = None
        async with unit_of_work(self._db, operation="challenge.verify"):
            attempt = await self._load_attempt(attempt_id)
            if attempt is None:
                raise NotFoundError("Challenge attempt")
            ATTEMPT_TRANSITIONS.ensure(ChallengeAttemptState(attempt.status), target)

            points = attempt.challenge.points_reward if approved else 0
            now = utcnow()
            await self._transition(
                attempt_id,
                target,
                points_awarded=points,
                admin_notes=notes,
                verified_at=now,
                verified_by_id=admin_id,
                updated_at=now,
            )
            if approved:
                balance = await BalanceStore(self._db).credit(
                    attempt.user_id,
                    points,
                    reason=f"challenge:{attempt.challenge_id}",
                )
            view = AttemptView.from_model(await self._load_attempt(attempt_id))

        if approved:
            get_economy_store().record_points("credited", points)
        logger.info(
            "Challenge attempt verified",
            attempt_id=str(attempt_id),
            admin_id=str(admin_id),
            approved=approved,
            points_awarded=points,
        )

        published = [events.challenge_verified(attempt_id, view.user_id, approved, points)]
        if approved and balance is not None:
            published.append(
                events.balance_credited(view.user_id, points, f"challenge:{view.challenge_id}", balance)
            )
        await self._dispatcher.publish(published)
        await self._dispatcher.send_challenge_verified(attempt_id)
        return VerificationResult(attempt=view, approved=approved, points_awarded=points, balance=balance)

    async def list_attempts(
        self,
        user_id: UUID,
        status: ChallengeAttemptState | None = None,
    ) -> list[AttemptView]:
        stmt = (
            select(ChallengeAttempt)
            .options(selectinload(ChallengeAttempt.challenge))
            .where(ChallengeAttempt.user_id == user_id)
            .order_by(ChallengeAttempt.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(ChallengeAttempt.status == status)
        result = await self._db.execute(stmt)
        return [AttemptView.from_model(attempt) for attempt in result.scalars().all()]

    async def list_pending_verifications(
        self,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[AttemptView]:
        page, limit = normalize_page(page, limit)
        condition = ChallengeAttempt.status == ChallengeAttemptState.COMPLETED

        total = (
            await self._db.execute(select(func.count()).select_from(ChallengeAttempt).where(condition))
        ).scalar_one()
        stmt = (
            select(ChallengeAttempt)
            .options(selectinload(ChallengeAttempt.challenge))
            .where(condition)
            .order_by(ChallengeAttempt.completed_at.asc(), ChallengeAttempt.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        items = [AttemptView.from_model(attempt) for attempt in result.scalars().all()]
        return Page(items=items, meta=PageMeta.build(total=int(total), page=page, limit=limit))

    async def leaderboard(
        self,
        challenge_id: UUID | None = None,
        limit: int = 10,
    ) -> list[LeaderboardEntry]:
        """Earliest verified finishers first."""

        limit = max(1, min(limit, settings.leaderboard_max_limit))
        stmt = (
            select(
                ChallengeAttempt.user_id,
                User.display_name,
                User.username,
                ChallengeAttempt.challenge_id,
                EcoChallenge.title,
                ChallengeAttempt.points_awarded,
                ChallengeAttempt.completed_at,
                ChallengeAttempt.verified_at,
            )
            .join(EcoChallenge, EcoChallenge.id == ChallengeAttempt.challenge_id)
            .join(User, User.id == ChallengeAttempt.user_id)
            .where(ChallengeAttempt.status == ChallengeAttemptState.VERIFIED)
            .order_by(ChallengeAttempt.verified_at.asc(), ChallengeAttempt.completed_at.asc())
            .limit(limit)
        )
        if challenge_id is not None:
            stmt = stmt.where(ChallengeAttempt.challenge_id == challenge_id)

        rows = (await self._db.execute(stmt)).all()
        return [
            LeaderboardEntry(
                rank=index,
                user_id=row.user_id,
                display_name=row.display_name or row.username,
                challenge_id=row.challenge_id,
                challenge_title=row.title,
                points_awarded=row.points_awarded,
                completed_at=ensure_utc(row.completed_at),
                verified_at=ensure_utc(row.verified_at),
            )
            for index, row in enumerate(rows, start=1)
        ]

    async def _load_attempt(self, attempt_id: UUID) -> ChallengeAttempt | None:
        stmt = (
            select(ChallengeAttempt)
            .options(selectinload(ChallengeAttempt.challenge))
            .where(ChallengeAttempt.id == attempt_id)
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _transition(self, attempt_id: UUID, target: ChallengeAttemptState, **values: object) -> None:
        sources = ATTEMPT_TRANSITIONS.sources_for(target)
        result = await self._db.execute(
            update(ChallengeAttempt)
            .where(ChallengeAttempt.id == attempt_id, ChallengeAttempt.status.in_(sources))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = (
                await self._db.execute(select(ChallengeAttempt.status).where(ChallengeAttempt.id == attempt_id))
            ).scalar_one_or_none()
            raise InvalidStateError(
                ATTEMPT_TRANSITIONS.entity,
                ChallengeAttemptState(current).value if current is not None else "missing",
                target.value,
            )


__all__ = [
    "AttemptView",
    "ChallengeLifecycleManager",
    "LeaderboardEntry",
    "VerificationResult",
    "validate_proof_url",
]
