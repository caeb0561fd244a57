"""Create users, point balances, challenges, attempts, sponsors, rewards and redemptions."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


material_type = sa.Enum(
    "plastic", "paper", "glass", "metal", "organic", "electronic", "textile", "mixed",
    name="material_type",
)
challenge_category = sa.Enum("daily", "weekly", "monthly", name="challenge_category")
challenge_source = sa.Enum("admin", "ai", name="challenge_source")
challenge_attempt_state = sa.Enum(
    "in_progress", "completed", "verified", "rejected", name="challenge_attempt_state"
)
redemption_state = sa.Enum("pending", "fulfilled", "cancelled", name="redemption_state")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("username", sa.String(length=30), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        *_timestamps(),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "points_balances",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_points_balances_user_id"),
        sa.CheckConstraint("points >= 0", name="ck_points_balances_points_non_negative"),
    )

    op.create_table(
        "eco_challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_reward", sa.Integer(), nullable=False),
        sa.Column("material_type", material_type, nullable=False),
        sa.Column("category", challenge_category, nullable=False, server_default="daily"),
        sa.Column("source", challenge_source, nullable=False, server_default="admin"),
        sa.Column(
            "created_by_admin_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("points_reward > 0", name="ck_eco_challenges_points_reward_positive"),
    )

    op.create_table(
        "challenge_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "challenge_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("eco_challenges.id"),
            nullable=False,
        ),
        sa.Column("status", challenge_attempt_state, nullable=False, server_default="in_progress"),
        sa.Column("proof_url", sa.String(), nullable=True),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "verified_by_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "challenge_id", name="uq_challenge_attempts_user_challenge"),
        sa.CheckConstraint("points_awarded >= 0", name="ck_challenge_attempts_points_awarded_non_negative"),
    )
    op.create_index("ix_challenge_attempts_user_id", "challenge_attempts", ["user_id"])
    op.create_index("ix_challenge_attempts_challenge_id", "challenge_attempts", ["challenge_id"])

    op.create_table(
        "sponsors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("logo_url", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_sponsors_name"),
    )

    op.create_table(
        "sponsor_rewards",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "sponsor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("sponsors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_cost", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("redeemed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("display_on_leaderboard", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("points_cost > 0", name="ck_sponsor_rewards_points_cost_positive"),
        sa.CheckConstraint("redeemed_count >= 0", name="ck_sponsor_rewards_redeemed_count_non_negative"),
        sa.CheckConstraint(
            "quantity IS NULL OR redeemed_count <= quantity",
            name="ck_sponsor_rewards_redeemed_count_within_quantity",
        ),
    )
    op.create_index("ix_sponsor_rewards_sponsor_id", "sponsor_rewards", ["sponsor_id"])

    op.create_table(
        "reward_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "reward_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("sponsor_rewards.id"),
            nullable=False,
        ),
        sa.Column("status", redemption_state, nullable=False, server_default="pending"),
        sa.Column("points_cost", sa.Integer(), nullable=False),
        sa.Column("refunded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "reward_id", name="uq_reward_redemptions_user_reward"),
        sa.CheckConstraint("points_cost > 0", name="ck_reward_redemptions_points_cost_positive"),
    )
    op.create_index("ix_reward_redemptions_user_id", "reward_redemptions", ["user_id"])
    op.create_index("ix_reward_redemptions_reward_id", "reward_redemptions", ["reward_id"])


def downgrade() -> None:
    op.drop_index("ix_reward_redemptions_reward_id", table_name="reward_redemptions")
    op.drop_index("ix_reward_redemptions_user_id", table_name="reward_redemptions")
    op.drop_table("reward_redemptions")
    op.drop_index("ix_sponsor_rewards_sponsor_id", table_name="sponsor_rewards")
    op.drop_table("sponsor_rewards")
    op.drop_table("sponsors")
    op.drop_index("ix_challenge_attempts_challenge_id", table_name="challenge_attempts")
    op.drop_index("ix_challenge_attempts_user_id", table_name="challenge_attempts")
    op.drop_table("challenge_attempts")
    op.drop_table("eco_challenges")
    op.drop_table("points_balances")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (redemption_state, challenge_attempt_state, challenge_source, challenge_category, material_type):
        enum.drop(bind, checkfirst=True)
