"""Reward catalog, claim and progress models."""

import math
from datetime import datetime, timedelta
from enum import Enum

from app import db


class RewardType(str, Enum):
    """How a reward is fulfilled."""

    COUPON = "coupon"
    DISCOUNT = "discount"
    FREE_ITEM = "free_item"
    POINTS = "points"
    BADGE = "badge"


class RewardStatus(str, Enum):
    """Reward status enum."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class RewardTriggerType(str, Enum):
    """User actions that rewards are evaluated against."""

    PHONE_VERIFICATION = "phone_verification"
    WORKOUT_STREAK = "workout_streak"
    MILESTONE = "milestone"
    REFERRAL = "referral"
    FIRST_WORKOUT = "first_workout"


# Fulfillment types that hand the user a presentable code
COUPON_REWARD_TYPES = (RewardType.COUPON.value, RewardType.FREE_ITEM.value)


class Reward(db.Model):
    """Reward definition that users can earn.

    Rows are only written by the reward engine; claimed counts move through a
    conditional update so ``quantity_claimed`` never passes ``quantity_limit``.
    """

    __tablename__ = "rewards"
    __table_args__ = (
        db.CheckConstraint(
            "quantity_limit IS NULL OR quantity_claimed <= quantity_limit",
            name="ck_rewards_quantity_within_limit",
        ),
    )

    id = db.Column(db.String(100), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # RewardType value
    value = db.Column(db.String(255), nullable=False)  # e.g. "Free protein bar"

    trigger_type = db.Column(db.String(50), nullable=False, index=True)
    trigger_data = db.Column(db.JSON, nullable=False, default=dict)  # {"streak_days": 3}

    status = db.Column(db.String(20), default=RewardStatus.ACTIVE.value, nullable=False)
    quantity_limit = db.Column(db.Integer, nullable=True)  # None = unlimited
    quantity_claimed = db.Column(db.Integer, default=0, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)

    image_url = db.Column(db.String(500), nullable=True)
    terms_and_conditions = db.Column(db.Text, nullable=True)
    redemption_instructions = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def config(self) -> dict:
        """Trigger configuration used for eligibility."""
        return {
            "trigger_type": self.trigger_type,
            "trigger_data": dict(self.trigger_data or {}),
        }

    def is_available(self, now: datetime | None = None) -> bool:
        """Check if the reward can currently be claimed."""
        now = now or datetime.utcnow()

        if self.status != RewardStatus.ACTIVE.value:
            return False

        if self.expires_at is not None and now >= self.expires_at:
            return False

        if (
            self.quantity_limit is not None
            and self.quantity_claimed >= self.quantity_limit
        ):
            return False

        return True

    def remaining_quantity(self) -> int | None:
        """Remaining claims, or None for unlimited rewards."""
        if self.quantity_limit is None:
            return None
        return max(0, self.quantity_limit - self.quantity_claimed)

    def expiry_status(self, now: datetime | None = None) -> dict:
        """Get expiry status with whole days left (rounded up)."""
        if self.expires_at is None:
            return {"expired": False, "days_until_expiry": None}

        now = now or datetime.utcnow()
        expired = self.expires_at <= now
        days = 0
        if not expired:
            days = math.ceil((self.expires_at - now).total_seconds() / 86400)

        return {"expired": expired, "days_until_expiry": days}

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "value": self.value,
            "config": self.config,
            "status": self.status,
            "quantity_limit": self.quantity_limit,
            "quantity_claimed": self.quantity_claimed,
            "remaining_quantity": self.remaining_quantity(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_available": self.is_available(),
            "image_url": self.image_url,
            "terms_and_conditions": self.terms_and_conditions,
            "redemption_instructions": self.redemption_instructions,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Reward {self.id}>"


class UserRewardClaim(db.Model):
    """A reward earned by a user.

    The only allowed change after insert is the single redemption, written with
    ``redeemed_at IS NULL`` in the WHERE clause.
    """

    __tablename__ = "reward_claims"

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    reward_id = db.Column(
        db.String(100),
        db.ForeignKey("rewards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    claimed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    redeemed_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)

    coupon_code = db.Column(db.String(150), unique=True, nullable=True)

    # Free-form redemption data and a snapshot of what triggered the claim
    claim_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)
    trigger_data = db.Column(db.JSON, nullable=False, default=dict)

    # Insertion order for per-user history
    sequence = db.Column(db.Integer, nullable=False, default=0)

    reward = db.relationship("Reward", lazy="joined")

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check if claim is still usable (not redeemed and not expired)."""
        if self.redeemed_at is not None:
            return False

        now = now or datetime.utcnow()
        if self.expires_at is not None and now >= self.expires_at:
            return False

        return True

    @property
    def is_redeemed(self) -> bool:
        return self.redeemed_at is not None

    def to_dict(self) -> dict:
        """Convert claim to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "reward_id": self.reward_id,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "coupon_code": self.coupon_code,
            "metadata": dict(self.claim_metadata or {}),
            "trigger_data": dict(self.trigger_data or {}),
            "is_valid": self.is_valid(),
        }

    def __repr__(self) -> str:
        return f"<UserRewardClaim {self.id} user={self.user_id} reward={self.reward_id}>"


class UserRewardProgress(db.Model):
    """Latest value of each named progress counter for a user."""

    __tablename__ = "user_reward_progress"

    user_id = db.Column(db.String(64), primary_key=True)
    counters = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<UserRewardProgress {self.user_id}>"


def default_rewards() -> list[dict]:
    """Default reward catalog."""
    return [
        {
            "id": "phone-verification-reward",
            "name": "Phone Verification Bonus",
            "description": "Verify your phone number and get a welcome coupon!",
            "type": RewardType.COUPON.value,
            "value": "10% off your first smoothie",
            "trigger_type": RewardTriggerType.PHONE_VERIFICATION.value,
            "trigger_data": {},
            "quantity_limit": None,
            "quantity_claimed": 0,
            "expires_at": None,
            "terms_and_conditions": (
                "Valid for 30 days from claiming. One-time use only."
            ),
            "redemption_instructions": "Show this coupon to staff at checkout",
        },
        {
            "id": "workout-streak-3",
            "name": "3-Day Workout Streak",
            "description": "Complete 3 workouts in 3 days and earn a free smoothie!",
            "type": RewardType.FREE_ITEM.value,
            "value": "Free protein smoothie",
            "trigger_type": RewardTriggerType.WORKOUT_STREAK.value,
            "trigger_data": {"streak_days": 3, "window_days": 3},
            "quantity_limit": 100,
            "quantity_claimed": 15,
            "expires_at": datetime.utcnow() + timedelta(days=30),
            "terms_and_conditions": (
                "Valid for 7 days from claiming. Must be used in-store."
            ),
            "redemption_instructions": (
                "Show this coupon to staff. Valid for any smoothie up to $8 value."
            ),
        },
        {
            "id": "first-workout-bonus",
            "name": "First Workout Bonus",
            "description": "Complete your first workout and get a free protein bar!",
            "type": RewardType.FREE_ITEM.value,
            "value": "Free protein bar",
            "trigger_type": RewardTriggerType.FIRST_WORKOUT.value,
            "trigger_data": {},
            "quantity_limit": None,
            "quantity_claimed": 0,
            "expires_at": None,
            "terms_and_conditions": (
                "Valid for 14 days from claiming. One-time use only."
            ),
            "redemption_instructions": "Show this coupon to staff at the front desk",
        },
    ]
