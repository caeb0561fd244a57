"""Per-request notification dispatcher wired to the application's sink."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.db.session import get_session
from ecoquest_api.services.notifications import NotificationDispatcher, NullEventPublisher


async def get_dispatcher(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> NotificationDispatcher:
    sink = getattr(request.app.state, "notification_sink", None) or NullEventPublisher()
    email_backend = getattr(request.app.state, "email_backend", None)
    return NotificationDispatcher(db, sink=sink, email_backend=email_backend)
