"""Central transition tables for attempts and redemptions."""

from __future__ import annotations

from enum import Enum
from typing import Generic, Mapping, TypeVar

from ecoquest_api.models.challenge import ChallengeAttemptState
from ecoquest_api.models.reward import RedemptionState

from .errors import InvalidStateError


StateT = TypeVar("StateT", bound=Enum)


class TransitionTable(Generic[StateT]):
    """Validates requested state changes against an allow-list."""

    def __init__(self, entity: str, allowed: Mapping[StateT, frozenset[StateT]]) -> None:
        self._entity = entity
        self._allowed = dict(allowed)

    @property
    def entity(self) -> str:
        return self._entity

    def can_transition(self, current: StateT, target: StateT) -> bool:
        return target in self._allowed.get(current, frozenset())

    def is_terminal(self, state: StateT) -> bool:
        return not self._allowed.get(state)

    def sources_for(self, target: StateT) -> frozenset[StateT]:
        """States from which ``target`` may be entered."""

        return frozenset(source for source, targets in self._allowed.items() if target in targets)

    def ensure(self, current: StateT, target: StateT) -> None:
        if not self.can_transition(current, target):
            raise InvalidStateError(self._entity, current.value, target.value)


ATTEMPT_TRANSITIONS: TransitionTable[ChallengeAttemptState] = TransitionTable(
    "challenge attempt",
    {
        ChallengeAttemptState.IN_PROGRESS: frozenset({ChallengeAttemptState.COMPLETED}),
        ChallengeAttemptState.COMPLETED: frozenset(
            {ChallengeAttemptState.VERIFIED, ChallengeAttemptState.REJECTED}
        ),
        ChallengeAttemptState.VERIFIED: frozenset(),
        ChallengeAttemptState.REJECTED: frozenset(),
    },
)

REDEMPTION_TRANSITIONS: TransitionTable[RedemptionState] = TransitionTable(
    "redemption",
    {
        RedemptionState.PENDING: frozenset({RedemptionState.FULFILLED, RedemptionState.CANCELLED}),
        RedemptionState.FULFILLED: frozenset(),
        RedemptionState.CANCELLED: frozenset(),
    },
)


__all__ = ["ATTEMPT_TRANSITIONS", "REDEMPTION_TRANSITIONS", "TransitionTable"]
