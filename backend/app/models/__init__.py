"""Database models."""

from app.models.reward import (
    Reward,
    RewardStatus,
    RewardTriggerType,
    RewardType,
    UserRewardClaim,
    UserRewardProgress,
)

__all__ = [
    "Reward",
    "RewardStatus",
    "RewardTriggerType",
    "RewardType",
    "UserRewardClaim",
    "UserRewardProgress",
]
