"""Eco-challenge attempt lifecycle."""

from .lifecycle import (  # noqa: F401
    AttemptView,
    ChallengeLifecycleManager,
    LeaderboardEntry,
    VerificationResult,
    validate_proof_url,
)
