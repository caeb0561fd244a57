"""Domain events emitted after a core operation commits."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID


class EventType(str, Enum):
    BALANCE_CREDITED = "balance.credited"
    BALANCE_DEBITED = "balance.debited"
    CHALLENGE_JOINED = "challenge.joined"
    CHALLENGE_COMPLETED = "challenge.completed"
    CHALLENGE_VERIFIED = "challenge.verified"
    REDEMPTION_CREATED = "redemption.created"
    REDEMPTION_FULFILLED = "redemption.fulfilled"
    REDEMPTION_CANCELLED = "redemption.cancelled"


@dataclass(frozen=True)
class DomainEvent:
    """Serializable event carrying the affected user and a payload."""

    event_type: EventType
    user_id: UUID
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_message(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "userId": str(self.user_id),
            "occurredAt": self.occurred_at.isoformat(),
            "payload": self.payload,
        }


def balance_credited(user_id: UUID, amount: int, reason: str, balance: int) -> DomainEvent:
    return DomainEvent(
        EventType.BALANCE_CREDITED,
        user_id,
        {"userId": str(user_id), "amount": amount, "reason": reason, "balance": balance},
    )


def balance_debited(user_id: UUID, amount: int, reason: str, balance: int) -> DomainEvent:
    return DomainEvent(
        EventType.BALANCE_DEBITED,
        user_id,
        {"userId": str(user_id), "amount": amount, "reason": reason, "balance": balance},
    )


def challenge_joined(attempt_id: UUID, user_id: UUID, challenge_id: UUID) -> DomainEvent:
    return DomainEvent(
        EventType.CHALLENGE_JOINED,
        user_id,
        {"attemptId": str(attempt_id), "userId": str(user_id), "challengeId": str(challenge_id)},
    )


def challenge_completed(attempt_id: UUID, user_id: UUID, challenge_id: UUID) -> DomainEvent:
    return DomainEvent(
        EventType.CHALLENGE_COMPLETED,
        user_id,
        {"attemptId": str(attempt_id), "userId": str(user_id), "challengeId": str(challenge_id)},
    )


def challenge_verified(attempt_id: UUID, user_id: UUID, approved: bool, points_awarded: int) -> DomainEvent:
    return DomainEvent(
        EventType.CHALLENGE_VERIFIED,
        user_id,
        {
            "attemptId": str(attempt_id),
            "userId": str(user_id),
            "approved": approved,
            "pointsAwarded": points_awarded,
        },
    )


def redemption_created(redemption_id: UUID, user_id: UUID, reward_id: UUID, points_cost: int) -> DomainEvent:
    return DomainEvent(
        EventType.REDEMPTION_CREATED,
        user_id,
        {
            "redemptionId": str(redemption_id),
            "userId": str(user_id),
            "rewardId": str(reward_id),
            "pointsCost": points_cost,
        },
    )


def redemption_fulfilled(redemption_id: UUID, user_id: UUID) -> DomainEvent:
    return DomainEvent(
        EventType.REDEMPTION_FULFILLED,
        user_id,
        {"redemptionId": str(redemption_id), "userId": str(user_id)},
    )


def redemption_cancelled(redemption_id: UUID, user_id: UUID, refunded: bool, amount: int) -> DomainEvent:
    return DomainEvent(
        EventType.REDEMPTION_CANCELLED,
        user_id,
        {
            "redemptionId": str(redemption_id),
            "userId": str(user_id),
            "refunded": refunded,
            "amount": amount,
        },
    )
