"""SQLAlchemy models package."""

from .challenge import (  # noqa: F401
    ChallengeAttempt,
    ChallengeAttemptState,
    ChallengeCategory,
    ChallengeSource,
    EcoChallenge,
    MaterialType,
)
from .points import PointsBalance  # noqa: F401
from .reward import RedemptionState, RewardRedemption, Sponsor, SponsorReward  # noqa: F401
from .user import User, UserRoleEnum  # noqa: F401
