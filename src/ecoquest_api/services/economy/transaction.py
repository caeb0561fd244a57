"""Unit-of-work helper giving every core operation all-or-nothing semantics."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger
from opentelemetry import trace
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.observability.economy import get_economy_store

from .errors import ConflictError, EconomyError, TransientStoreError


tracer = trace.get_tracer(__name__)

# unique constraint name -> conflict message surfaced to the caller
_CONFLICT_CONSTRAINTS = {
    "uq_reward_redemptions_user_reward": "You have already redeemed this reward",
    "uq_challenge_attempts_user_challenge": "You have already joined this challenge",
}


def _conflict_message(error: IntegrityError) -> str | None:
    detail = str(error.orig) if error.orig is not None else str(error)
    for constraint, message in _CONFLICT_CONSTRAINTS.items():
        if constraint in detail:
            return message
    # SQLite reports the offending columns rather than the constraint name
    if "reward_redemptions.user_id, reward_redemptions.reward_id" in detail:
        return _CONFLICT_CONSTRAINTS["uq_reward_redemptions_user_reward"]
    if "challenge_attempts.user_id, challenge_attempts.challenge_id" in detail:
        return _CONFLICT_CONSTRAINTS["uq_challenge_attempts_user_challenge"]
    return None


@asynccontextmanager
async def unit_of_work(session: AsyncSession, *, operation: str) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any failure.

    Store failures are re-raised as ``TransientStoreError`` except unique
    violations on the attempt/redemption pairs, which become ``ConflictError``.
    The outcome of every operation is counted in the economy observability store.
    """

    store = get_economy_store()
    with tracer.start_as_current_span(f"economy.{operation}") as span:
        try:
            yield session
            await session.commit()
        except EconomyError as exc:
            await session.rollback()
            store.record_operation(operation, exc.code)
            span.set_attribute("economy.outcome", exc.code)
            logger.info("Economy operation rejected", operation=operation, code=exc.code, reason=exc.message)
            raise
        except IntegrityError as exc:
            await session.rollback()
            message = _conflict_message(exc)
            if message is not None:
                store.record_operation(operation, ConflictError.code)
                span.set_attribute("economy.outcome", ConflictError.code)
                logger.info("Economy operation conflicted", operation=operation, reason=message)
                raise ConflictError(message) from exc
            store.record_operation(operation, TransientStoreError.code)
            logger.error("Economy operation violated a store constraint", operation=operation, error=str(exc.orig))
            raise TransientStoreError(f"{operation} failed; no changes were applied") from exc
        except SQLAlchemyError as exc:
            await session.rollback()
            store.record_operation(operation, TransientStoreError.code)
            span.set_attribute("economy.outcome", TransientStoreError.code)
            logger.exception("Economy operation failed in the store", operation=operation)
            raise TransientStoreError(f"{operation} failed; no changes were applied") from exc
        except BaseException:
            await session.rollback()
            store.record_operation(operation, "error")
            raise
        store.record_operation(operation, "succeeded")
        span.set_attribute("economy.outcome", "succeeded")


__all__ = ["unit_of_work"]
