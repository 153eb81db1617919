"""Business logic services."""

from app.services.reward_engine import RewardEngine, RewardError, seed_default_rewards

__all__ = [
    "RewardEngine",
    "RewardError",
    "seed_default_rewards",
]
