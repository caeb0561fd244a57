"""Sponsor reward catalog and user redemptions."""

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


class Sponsor(Base):
    """Organisation funding one or more rewards."""

    __tablename__ = "sponsors"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(length=100), nullable=False, unique=True)
    logo_url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    contact_email = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    rewards = relationship("SponsorReward", back_populates="sponsor")


class SponsorReward(Base):
    """Redeemable catalog entry with optional stock limit and expiry."""

    __tablename__ = "sponsor_rewards"
    __table_args__ = (
        CheckConstraint("points_cost > 0", name="points_cost_positive"),
        CheckConstraint("redeemed_count >= 0", name="redeemed_count_non_negative"),
        CheckConstraint(
            "quantity IS NULL OR redeemed_count <= quantity",
            name="redeemed_count_within_quantity",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    sponsor_id = Column(UUID(as_uuid=True), ForeignKey("sponsors.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(length=150), nullable=False)
    description = Column(Text, nullable=True)
    points_cost = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=True)
    redeemed_count = Column(Integer, nullable=False, default=0, server_default="0")
    display_on_leaderboard = Column(Boolean, nullable=False, default=True, server_default="true")
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    sponsor = relationship("Sponsor", back_populates="rewards")
    redemptions = relationship("RewardRedemption", back_populates="reward")


class RedemptionState(str, Enum):
    """Lifecycle of a reward redemption."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class RewardRedemption(Base):
    """A user's claim on one unit of a sponsor reward."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "reward_id", name="uq_reward_redemptions_user_reward"),
        CheckConstraint("points_cost > 0", name="points_cost_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    reward_id = Column(UUID(as_uuid=True), ForeignKey("sponsor_rewards.id"), nullable=False, index=True)
    status = Column(
        SqlEnum(RedemptionState, name="redemption_state", values_callable=enum_values),
        nullable=False,
        default=RedemptionState.PENDING,
        server_default=RedemptionState.PENDING.value,
    )
    points_cost = Column(Integer, nullable=False)
    refunded = Column(Boolean, nullable=False, default=False, server_default="false")
    claimed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    reward = relationship("SponsorReward", back_populates="redemptions")
