from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class EconomySnapshot:
    operations: Dict[str, Dict[str, int]]
    points: Dict[str, int]
    notifications: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "operations": {key: dict(value) for key, value in self.operations.items()},
            "points": dict(self.points),
            "notifications": dict(self.notifications),
        }


class EconomyObservabilityStore:
    """Collect points economy outcomes for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._operations: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._points: Dict[str, int] = defaultdict(int)
        self._notifications: Dict[str, int] = defaultdict(int)

    def record_operation(self, operation: str, outcome: str) -> None:
        with self._lock:
            self._operations[operation][outcome] += 1

    def record_points(self, direction: str, amount: int) -> None:
        with self._lock:
            self._points[direction] += amount

    def record_notification(self, outcome: str) -> None:
        with self._lock:
            self._notifications[outcome] += 1

    def snapshot(self) -> EconomySnapshot:
        with self._lock:
            operations = {key: dict(value) for key, value in self._operations.items()}
            points = dict(self._points)
            notifications = dict(self._notifications)
        return EconomySnapshot(operations=operations, points=points, notifications=notifications)

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._points.clear()
            self._notifications.clear()


_STORE = EconomyObservabilityStore()


def get_economy_store() -> EconomyObservabilityStore:
    return _STORE


__all__ = ["get_economy_store", "EconomyObservabilityStore", "EconomySnapshot"]
