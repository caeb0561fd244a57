"""Real-time fan-out of domain events to connected clients."""

from __future__ import annotations

import json
from typing import Iterable, Protocol, Sequence

from redis.asyncio import Redis

from ecoquest_api.core.settings import settings
from ecoquest_api.services.economy.events import DomainEvent


class NotificationSink(Protocol):
    """Destination for post-commit domain events."""

    async def publish(self, events: Sequence[DomainEvent]) -> None:
        ...


class RedisEventPublisher:
    """Publishes each event on the owning user's channel and, when flagged, the admin channel."""

    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        channel_prefix: str | None = None,
        admin_events: Iterable[str] | None = None,
    ) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._prefix = channel_prefix or settings.realtime_channel_prefix
        self._admin_events = frozenset(
            settings.realtime_admin_events if admin_events is None else admin_events
        )

    def user_channel(self, user_id: object) -> str:
        return f"{self._prefix}:user:{user_id}"

    @property
    def admin_channel(self) -> str:
        return f"{self._prefix}:admins"

    async def publish(self, events: Sequence[DomainEvent]) -> None:
        if not events:
            return
        async with self._redis.pipeline(transaction=False) as pipe:
            for event in events:
                message = json.dumps(event.as_message(), default=str)
                pipe.publish(self.user_channel(event.user_id), message)
                if event.event_type.value in self._admin_events:
                    pipe.publish(self.admin_channel, message)
            await pipe.execute()

    async def aclose(self) -> None:
        await self._redis.aclose()


class InMemoryEventPublisher:
    """Captures published events for inspection in tests."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, events: Sequence[DomainEvent]) -> None:
        self.events.extend(events)

    def types(self) -> list[str]:
        return [event.event_type.value for event in self.events]


class NullEventPublisher:
    """Discards events when real-time delivery is disabled."""

    async def publish(self, events: Sequence[DomainEvent]) -> None:
        return None


def build_default_sink() -> NotificationSink:
    if settings.realtime_enabled:
        return RedisEventPublisher()
    return NullEventPublisher()


__all__ = [
    "InMemoryEventPublisher",
    "NotificationSink",
    "NullEventPublisher",
    "RedisEventPublisher",
    "build_default_sink",
]
