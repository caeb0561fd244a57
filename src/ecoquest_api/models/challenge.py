"""Eco-challenge catalog and per-user attempts."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ecoquest_api.db.base import Base, enum_values


class MaterialType(str, Enum):
    """Recyclable material a challenge targets."""

    PLASTIC = "plastic"
    PAPER = "paper"
    GLASS = "glass"
    METAL = "metal"
    ORGANIC = "organic"
    ELECTRONIC = "electronic"
    TEXTILE = "textile"
    MIXED = "mixed"


class ChallengeCategory(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ChallengeSource(str, Enum):
    ADMIN = "admin"
    AI = "ai"


class ChallengeAttemptState(str, Enum):
    """Lifecycle of a user's attempt at a challenge."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VERIFIED = "verified"
    REJECTED = "rejected"


class EcoChallenge(Base):
    """Challenge template authored by admins or generated upstream."""

    __tablename__ = "eco_challenges"
    __table_args__ = (
        CheckConstraint("points_reward > 0", name="points_reward_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String(length=100), nullable=False)
    description = Column(Text, nullable=True)
    points_reward = Column(Integer, nullable=False)
    material_type = Column(SqlEnum(MaterialType, name="material_type", values_callable=enum_values), nullable=False)
    category = Column(
        SqlEnum(ChallengeCategory, name="challenge_category", values_callable=enum_values),
        nullable=False,
        default=ChallengeCategory.DAILY,
        server_default=ChallengeCategory.DAILY.value,
    )
    source = Column(
        SqlEnum(ChallengeSource, name="challenge_source", values_callable=enum_values),
        nullable=False,
        default=ChallengeSource.ADMIN,
        server_default=ChallengeSource.ADMIN.value,
    )
    created_by_admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    attempts = relationship("ChallengeAttempt", back_populates="challenge")


class ChallengeAttempt(Base):
    """One user's participation in one challenge."""

    __tablename__ = "challenge_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_attempts_user_challenge"),
        CheckConstraint("points_awarded >= 0", name="points_awarded_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    challenge_id = Column(UUID(as_uuid=True), ForeignKey("eco_challenges.id"), nullable=False, index=True)
    status = Column(
        SqlEnum(ChallengeAttemptState, name="challenge_attempt_state", values_callable=enum_values),
        nullable=False,
        default=ChallengeAttemptState.IN_PROGRESS,
        server_default=ChallengeAttemptState.IN_PROGRESS.value,
    )
    proof_url = Column(String, nullable=True)
    points_awarded = Column(Integer, nullable=False, default=0, server_default="0")
    admin_notes = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    challenge = relationship("EcoChallenge", back_populates="attempts")
