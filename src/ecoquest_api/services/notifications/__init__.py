"""Notification service package."""

from .backend import EmailBackend, InMemoryEmailBackend, SMTPEmailBackend
from .realtime import (
    InMemoryEventPublisher,
    NotificationSink,
    NullEventPublisher,
    RedisEventPublisher,
    build_default_sink,
)
from .service import NotificationDispatcher, NotificationEvent

__all__ = [
    "EmailBackend",
    "InMemoryEmailBackend",
    "SMTPEmailBackend",
    "InMemoryEventPublisher",
    "NotificationSink",
    "NullEventPublisher",
    "RedisEventPublisher",
    "build_default_sink",
    "NotificationDispatcher",
    "NotificationEvent",
]
