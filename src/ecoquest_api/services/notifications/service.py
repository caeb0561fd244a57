"""Post-commit dispatch of domain events and transactional emails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ecoquest_api.core.settings import get_settings
from ecoquest_api.models.challenge import ChallengeAttempt
from ecoquest_api.models.reward import RewardRedemption, SponsorReward
from ecoquest_api.models.user import User
from ecoquest_api.observability.economy import get_economy_store
from ecoquest_api.services.economy.events import DomainEvent

from .backend import EmailBackend, SMTPEmailBackend
from .realtime import NotificationSink, build_default_sink
from .templates import RenderedTemplate, render_challenge_verified, render_redemption_fulfilled


@dataclass
class NotificationEvent:
    """Representation of an email that was sent."""

    recipient: str
    subject: str
    body_text: str
    body_html: str | None
    event_type: str
    metadata: dict[str, Any]


@dataclass
class _UserContact:
    email: str
    display_name: Optional[str]


class NotificationDispatcher:
    """Best-effort delivery of events and emails once a core operation has committed.

    Nothing here raises: failures are logged, counted in the economy
    observability store and dropped. There is no inline retry.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        sink: Optional[NotificationSink] = None,
        email_backend: Optional[EmailBackend] = None,
    ) -> None:
        self._db = db_session
        self._sink = sink if sink is not None else build_default_sink()
        self._backend = email_backend if email_backend is not None else self._build_default_backend()
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Emails delivered through this dispatcher (useful with the in-memory backend)."""
        return self._events

    async def publish(self, events: Sequence[DomainEvent]) -> None:
        if not events:
            return
        store = get_economy_store()
        try:
            await self._sink.publish(events)
        except Exception:
            store.record_notification("failed")
            logger.opt(exception=True).warning(
                "Dropped domain events after sink failure",
                event_types=[event.event_type.value for event in events],
            )
            return
        store.record_notification("published")

    async def send_redemption_fulfilled(self, redemption_id: UUID) -> None:
        if self._backend is None:
            return
        try:
            stmt = (
                select(RewardRedemption)
                .options(selectinload(RewardRedemption.reward).selectinload(SponsorReward.sponsor))
                .where(RewardRedemption.id == redemption_id)
            )
            redemption = (await self._db.execute(stmt)).scalar_one_or_none()
            if redemption is None:
                return
            contact = await self._resolve_user_contact(redemption.user_id)
            if contact is None:
                return

            reward = redemption.reward
            template = render_redemption_fulfilled(
                reward_title=reward.title,
                sponsor_name=reward.sponsor.name if reward.sponsor else None,
                points_cost=redemption.points_cost,
                contact_name=contact.display_name,
                dashboard_url=f"{get_settings().frontend_url}/rewards",
            )
            await self._deliver(
                contact,
                template,
                event_type="redemption_fulfilled",
                metadata={"redemption_id": str(redemption.id), "reward_id": str(reward.id)},
            )
        except Exception:
            get_economy_store().record_notification("email_failed")
            logger.opt(exception=True).warning(
                "Failed to send redemption fulfilled email", redemption_id=str(redemption_id)
            )

    async def send_challenge_verified(self, attempt_id: UUID) -> None:
        if self._backend is None:
            return
        try:
            stmt = (
                select(ChallengeAttempt)
                .options(selectinload(ChallengeAttempt.challenge))
                .where(ChallengeAttempt.id == attempt_id)
            )
            attempt = (await self._db.execute(stmt)).scalar_one_or_none()
            if attempt is None:
                return
            contact = await self._resolve_user_contact(attempt.user_id)
            if contact is None:
                return

            template = render_challenge_verified(
                challenge_title=attempt.challenge.title,
                approved=attempt.points_awarded > 0,
                points_awarded=attempt.points_awarded,
                admin_notes=attempt.admin_notes,
                contact_name=contact.display_name,
            )
            await self._deliver(
                contact,
                template,
                event_type="challenge_verified",
                metadata={"attempt_id": str(attempt.id), "challenge_id": str(attempt.challenge_id)},
            )
        except Exception:
            get_economy_store().record_notification("email_failed")
            logger.opt(exception=True).warning(
                "Failed to send challenge verification email", attempt_id=str(attempt_id)
            )

    def _build_default_backend(self) -> Optional[EmailBackend]:
        settings = get_settings()
        if not settings.smtp_host or not settings.smtp_sender_email:
            return None

        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )

    async def _resolve_user_contact(self, user_id: Optional[UUID]) -> Optional[_UserContact]:
        if not user_id:
            return None
        user = (await self._db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if not user or not user.email:
            return None
        return _UserContact(email=user.email, display_name=user.display_name)

    async def _deliver(
        self,
        contact: _UserContact,
        template: RenderedTemplate,
        *,
        event_type: str,
        metadata: dict[str, Any],
    ) -> None:
        """Send using active backend and record emitted event."""
        if self._backend is None:
            return

        await self._backend.send_email(
            contact.email,
            template.subject,
            template.text_body,
            body_html=template.html_body,
        )
        self._events.append(
            NotificationEvent(
                recipient=contact.email,
                subject=template.subject,
                body_text=template.text_body,
                body_html=template.html_body,
                event_type=event_type,
                metadata=metadata,
            )
        )
        get_economy_store().record_notification("email_sent")
        logger.info("Sent notification email", event_type=event_type, **metadata)
