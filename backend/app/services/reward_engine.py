"""Reward eligibility and claim lifecycle service."""

import logging
import numbers
import secrets
import string
import uuid
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.dialects import postgresql, sqlite

from app import db
from app.models.reward import (
    COUPON_REWARD_TYPES,
    Reward,
    RewardStatus,
    RewardTriggerType,
    UserRewardClaim,
    UserRewardProgress,
    default_rewards,
)

logger = logging.getLogger(__name__)

DEFAULT_CLAIM_TTL_DAYS = 30
DEFAULT_STREAK_TARGET = 3
COUPON_ALPHABET = string.ascii_uppercase + string.digits

# Progress counters written by triggers
PHONE_VERIFIED = "phone_verified"
CURRENT_WORKOUT_STREAK = "current_workout_streak"
TOTAL_WORKOUTS = "total_workouts"


class RewardError(Exception):
    """Failure raised by reward lookups and mutations."""

    REWARD_NOT_FOUND = "reward_not_found"
    USER_NOT_ELIGIBLE = "user_not_eligible"
    CLAIM_NOT_FOUND = "claim_not_found"
    CLAIM_EXPIRED = "claim_expired"

    def __init__(self, kind: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @classmethod
    def reward_not_found(cls, reward_id: str) -> "RewardError":
        return cls(
            cls.REWARD_NOT_FOUND,
            f"Reward not found: {reward_id}",
            {"reward_id": reward_id},
        )

    @classmethod
    def user_not_eligible(
        cls, user_id: str, reward_id: str, reason: str
    ) -> "RewardError":
        return cls(
            cls.USER_NOT_ELIGIBLE,
            f"User not eligible for reward: {reason}",
            {"user_id": user_id, "reward_id": reward_id, "reason": reason},
        )

    @classmethod
    def claim_not_found(cls, user_id: str, claim_id: str) -> "RewardError":
        return cls(
            cls.CLAIM_NOT_FOUND,
            "Reward claim not found",
            {"user_id": user_id, "claim_id": claim_id},
        )

    @classmethod
    def claim_expired(cls, user_id: str, claim_id: str) -> "RewardError":
        return cls(
            cls.CLAIM_EXPIRED,
            "Reward claim has expired or already been redeemed",
            {"user_id": user_id, "claim_id": claim_id},
        )

    @property
    def reason(self) -> str | None:
        return self.details.get("reason")


class RewardEngine:
    """Owns the reward catalog, user progress counters and issued claims."""

    def __init__(self, claim_ttl_days: int | None = None):
        if claim_ttl_days is None:
            claim_ttl_days = current_app.config.get(
                "REWARD_CLAIM_TTL_DAYS", DEFAULT_CLAIM_TTL_DAYS
            )
        self.claim_ttl = timedelta(days=claim_ttl_days)
        self.coupon_length = current_app.config.get("COUPON_CODE_LENGTH", 8)

    # ============ Catalog ============

    def get_active_rewards(self) -> list[Reward]:
        """Get all rewards that can currently be claimed."""
        now = datetime.utcnow()
        rewards = Reward.query.order_by(Reward.created_at, Reward.id).all()
        return [r for r in rewards if r.is_available(now)]

    def get_rewards_by_trigger(self, trigger_type) -> list[Reward]:
        """Get available rewards registered for a trigger type.

        Accepts a RewardTriggerType or its string value. Trigger types outside
        the enum match rewards stored with the same string.
        """
        trigger_type = getattr(trigger_type, "value", trigger_type)
        return [
            r for r in self.get_active_rewards() if r.trigger_type == trigger_type
        ]

    def get_reward_by_id(self, reward_id: str) -> Reward:
        """Get a reward regardless of availability."""
        reward = db.session.get(Reward, reward_id)
        if not reward:
            raise RewardError.reward_not_found(reward_id)
        return reward

    # ============ Progress ============

    def get_user_progress(self, user_id: str) -> dict:
        """Get a copy of the user's progress counters."""
        progress = db.session.get(UserRewardProgress, user_id)
        return dict(progress.counters or {}) if progress else {}

    def set_user_progress(self, user_id: str, counters: dict) -> dict:
        """Overwrite a user's progress counters, bypassing trigger logic.

        Raises ValueError if a counter value is not a number.
        """
        invalid = [
            key
            for key, value in counters.items()
            if isinstance(value, bool) or not isinstance(value, numbers.Number)
        ]
        if invalid:
            raise ValueError(f"Non-numeric progress counters: {invalid}")

        progress = self._get_or_create_progress(user_id)
        progress.counters = dict(counters)
        db.session.commit()
        logger.info(f"Progress for user {user_id} overwritten: {counters}")
        return dict(progress.counters)

    def _get_or_create_progress(
        self, user_id: str, lock: bool = False
    ) -> UserRewardProgress:
        self._insert_progress_if_absent(user_id)

        query = UserRewardProgress.query.filter_by(user_id=user_id)
        if lock:
            query = query.with_for_update()
        return query.one()

    def _insert_progress_if_absent(self, user_id: str):
        """Create an empty progress row unless one exists.

        Concurrent first writes for a user both succeed; the loser's insert
        is a no-op instead of a primary key violation.
        """
        dialect = db.session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            if not db.session.get(UserRewardProgress, user_id):
                db.session.add(UserRewardProgress(user_id=user_id, counters={}))
                db.session.flush()
            return

        db.session.execute(
            insert(UserRewardProgress)
            .values(user_id=user_id, counters={}, updated_at=datetime.utcnow())
            .on_conflict_do_nothing(index_elements=["user_id"])
        )

    # ============ Eligibility ============

    def check_reward_eligibility(self, user_id: str, reward_id: str) -> dict:
        """Check if a user can claim a reward right now."""
        reward = self.get_reward_by_id(reward_id)
        now = datetime.utcnow()

        if not reward.is_available(now):
            return {
                "eligible": False,
                "reason": "Reward is not currently available",
                "requirements_met": {},
            }

        if self._has_valid_claim(user_id, reward_id, now):
            return {
                "eligible": False,
                "reason": "You have already claimed this reward",
                "requirements_met": {},
            }

        counters = self.get_user_progress(user_id)
        return self._evaluate_trigger(reward, counters)

    def _has_valid_claim(self, user_id: str, reward_id: str, now: datetime) -> bool:
        claims = UserRewardClaim.query.filter_by(
            user_id=user_id, reward_id=reward_id, redeemed_at=None
        ).all()
        return any(c.is_valid(now) for c in claims)

    def _evaluate_trigger(self, reward: Reward, counters: dict) -> dict:
        """Apply the trigger-specific rule to the user's counters."""
        trigger_type = reward.trigger_type

        if trigger_type == RewardTriggerType.PHONE_VERIFICATION.value:
            verified = (counters.get(PHONE_VERIFIED) or 0) >= 1
            return {
                "eligible": verified,
                "reason": None if verified else "Phone number not verified",
                "requirements_met": {"phone_verified": verified},
                "next_requirement": None if verified else "Verify your phone number",
            }

        if trigger_type == RewardTriggerType.WORKOUT_STREAK.value:
            streak = counters.get(CURRENT_WORKOUT_STREAK) or 0
            target = self._streak_target(reward)
            met = streak >= target
            remaining = target - streak
            return {
                "eligible": met,
                "reason": (
                    None if met else f"Need {remaining} more consecutive workout days"
                ),
                "requirements_met": {"workout_streak": met},
                "next_requirement": (
                    None if met else f"Complete {remaining} more workouts"
                ),
            }

        if trigger_type == RewardTriggerType.FIRST_WORKOUT.value:
            done = (counters.get(TOTAL_WORKOUTS) or 0) >= 1
            return {
                "eligible": done,
                "reason": None if done else "Complete your first workout",
                "requirements_met": {"first_workout": done},
                "next_requirement": None if done else "Complete your first workout",
            }

        # No progress requirement for other triggers
        return {"eligible": True, "reason": None, "requirements_met": {}}

    @staticmethod
    def _streak_target(reward: Reward) -> int:
        return (reward.trigger_data or {}).get("streak_days") or DEFAULT_STREAK_TARGET

    # ============ Claims ============

    def claim_reward(
        self, user_id: str, reward_id: str, trigger_data: dict | None = None
    ) -> dict:
        """Issue a claim after re-checking eligibility.

        Raises RewardError when the reward does not exist or the user is not
        eligible at the time of the claim.
        """
        # Serialize claims for this user until commit
        self._get_or_create_progress(user_id, lock=True)

        try:
            eligibility = self.check_reward_eligibility(user_id, reward_id)
        except RewardError:
            db.session.rollback()
            raise

        if not eligibility["eligible"]:
            db.session.rollback()
            raise RewardError.user_not_eligible(
                user_id, reward_id, eligibility.get("reason") or "Not eligible"
            )

        reward = self.get_reward_by_id(reward_id)
        now = datetime.utcnow()

        result = db.session.execute(
            update(Reward)
            .where(
                Reward.id == reward_id,
                or_(
                    Reward.quantity_limit.is_(None),
                    Reward.quantity_claimed < Reward.quantity_limit,
                ),
            )
            .values(quantity_claimed=Reward.quantity_claimed + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.rollback()
            raise RewardError.user_not_eligible(
                user_id, reward_id, "Reward is not currently available"
            )

        claim = UserRewardClaim(
            id=f"claim_{uuid.uuid4().hex}",
            user_id=user_id,
            reward_id=reward_id,
            claimed_at=now,
            expires_at=now + self.claim_ttl,
            coupon_code=(
                self._generate_coupon_code(reward)
                if reward.type in COUPON_REWARD_TYPES
                else None
            ),
            claim_metadata={},
            trigger_data=dict(trigger_data or {}),
            sequence=UserRewardClaim.query.filter_by(user_id=user_id).count(),
        )
        db.session.add(claim)
        db.session.commit()

        logger.info(f"Reward {reward_id} claimed by user {user_id} ({claim.id})")

        return {
            "success": True,
            "claim": claim,
            "message": f"Congratulations! You've earned: {reward.value}",
        }

    def _generate_coupon_code(self, reward: Reward) -> str:
        """Generate a coupon code not used by any existing claim."""
        while True:
            suffix = "".join(
                secrets.choice(COUPON_ALPHABET) for _ in range(self.coupon_length)
            )
            code = f"{reward.id.upper()}_{suffix}"
            if not UserRewardClaim.query.filter_by(coupon_code=code).first():
                return code

    def get_user_reward_claims(self, user_id: str) -> list[UserRewardClaim]:
        """Get all claims of a user in insertion order."""
        return (
            UserRewardClaim.query.filter_by(user_id=user_id)
            .order_by(UserRewardClaim.sequence)
            .all()
        )

    def get_user_active_claims(self, user_id: str) -> list[UserRewardClaim]:
        """Get claims that are neither redeemed nor expired."""
        now = datetime.utcnow()
        return [c for c in self.get_user_reward_claims(user_id) if c.is_valid(now)]

    def redeem_reward_claim(self, user_id: str, claim_id: str) -> dict:
        """Mark a claim as redeemed. Allowed exactly once."""
        claim = UserRewardClaim.query.filter_by(id=claim_id, user_id=user_id).first()
        if not claim:
            raise RewardError.claim_not_found(user_id, claim_id)

        now = datetime.utcnow()
        result = db.session.execute(
            update(UserRewardClaim)
            .where(
                UserRewardClaim.id == claim_id,
                UserRewardClaim.user_id == user_id,
                UserRewardClaim.redeemed_at.is_(None),
                or_(
                    UserRewardClaim.expires_at.is_(None),
                    UserRewardClaim.expires_at > now,
                ),
            )
            .values(redeemed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.rollback()
            raise RewardError.claim_expired(user_id, claim_id)

        db.session.commit()
        logger.info(f"Claim {claim_id} redeemed by user {user_id}")

        return {"success": True, "message": "Reward successfully redeemed!"}

    # ============ Summaries ============

    def get_user_reward_summary(self, user_id: str) -> dict:
        """Aggregate a user's claim history."""
        claims = self.get_user_reward_claims(user_id)
        now = datetime.utcnow()

        return {
            "total_rewards_available": len(self.get_active_rewards()),
            "total_rewards_claimed": len(claims),
            "total_rewards_redeemed": sum(1 for c in claims if c.is_redeemed),
            "active_claims": [c for c in claims if c.is_valid(now)],
        }

    def get_user_reward_progress(self, user_id: str) -> list[dict]:
        """Compute display progress toward every available reward."""
        counters = self.get_user_progress(user_id)
        progress = []

        for reward in self.get_active_rewards():
            current, target, percentage = 0, 1, 0.0
            description = reward.description

            if reward.trigger_type == RewardTriggerType.PHONE_VERIFICATION.value:
                current = counters.get(PHONE_VERIFIED) or 0
                percentage = min(current * 100, 100)
                description = "Verify your phone number to unlock this reward"

            elif reward.trigger_type == RewardTriggerType.WORKOUT_STREAK.value:
                current = counters.get(CURRENT_WORKOUT_STREAK) or 0
                target = self._streak_target(reward)
                percentage = min(current / target * 100, 100)
                description = f"Complete {target} workouts in {target} days"

            elif reward.trigger_type == RewardTriggerType.FIRST_WORKOUT.value:
                current = counters.get(TOTAL_WORKOUTS) or 0
                percentage = 100 if current >= 1 else 0
                description = "Complete your first workout"

            progress.append(
                {
                    "reward_id": reward.id,
                    "reward": reward,
                    "progress_percentage": round(percentage),
                    "current_value": current,
                    "target_value": target,
                    "description": description,
                }
            )

        return progress

    # ============ Triggers ============

    def trigger_reward_check(
        self, user_id: str, trigger_type, trigger_data: dict | None = None
    ) -> dict:
        """Record a user action and auto-claim every reward it unlocks.

        Individual claim failures are logged and reported in
        ``skipped_rewards``; this call itself never fails on them.
        Unknown trigger types leave progress unchanged but still claim
        matching rewards. Raises ValueError for a malformed streak_count.
        """
        trigger_type = getattr(trigger_type, "value", trigger_type)
        trigger_data = dict(trigger_data or {})

        self._apply_trigger(user_id, trigger_type, trigger_data)

        triggered, skipped = [], []
        for reward in self.get_rewards_by_trigger(trigger_type):
            try:
                eligibility = self.check_reward_eligibility(user_id, reward.id)
                if not eligibility["eligible"]:
                    skipped.append(
                        {"reward_id": reward.id, "reason": eligibility.get("reason")}
                    )
                    continue

                triggered.append(self.claim_reward(user_id, reward.id, trigger_data))
            except RewardError as e:
                logger.info(f"Could not claim reward {reward.id}: {e.message}")
                skipped.append(
                    {"reward_id": reward.id, "reason": e.reason or e.message}
                )

        return {
            "triggered_rewards": triggered,
            "available_rewards": self.get_active_rewards(),
            "skipped_rewards": skipped,
        }

    def _apply_trigger(self, user_id: str, trigger_type: str, trigger_data: dict):
        streak = None
        if trigger_type == RewardTriggerType.WORKOUT_STREAK.value:
            streak = self._parse_streak(trigger_data.get("streak_count"))

        progress = self._get_or_create_progress(user_id, lock=True)
        counters = dict(progress.counters or {})

        if trigger_type == RewardTriggerType.PHONE_VERIFICATION.value:
            counters[PHONE_VERIFIED] = 1
        elif trigger_type == RewardTriggerType.FIRST_WORKOUT.value:
            # Cumulative: one call per completed workout
            counters[TOTAL_WORKOUTS] = (counters.get(TOTAL_WORKOUTS) or 0) + 1
        elif trigger_type == RewardTriggerType.WORKOUT_STREAK.value:
            # Absolute value supplied by the caller
            counters[CURRENT_WORKOUT_STREAK] = streak

        progress.counters = counters
        db.session.commit()

    @staticmethod
    def _parse_streak(value) -> int:
        """Missing streak counts as 1; anything else must be a whole count >= 0."""
        if value is None:
            return 1
        if isinstance(value, bool):
            raise ValueError(f"Invalid streak_count: {value!r}")
        try:
            streak = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid streak_count: {value!r}") from None
        if streak < 0:
            raise ValueError(f"Invalid streak_count: {value!r}")
        return streak

    # ============ Coupons ============

    def validate_coupon_code(self, code: str) -> dict:
        """Look up a coupon code and report whether it can be used."""
        claim = UserRewardClaim.query.filter_by(coupon_code=code).first() if code else None

        if not claim:
            return {"valid": False, "message": "Invalid coupon code"}

        if not claim.is_valid():
            return {
                "valid": False,
                "claim": claim,
                "message": "Coupon has expired or already been used",
            }

        reward = self.get_reward_by_id(claim.reward_id)
        return {
            "valid": True,
            "claim": claim,
            "reward": reward,
            "message": f"Valid coupon: {reward.value}",
        }

    # ============ Admin ============

    def deactivate_reward(self, reward_id: str) -> Reward:
        """Take a reward out of the catalog without deleting it."""
        reward = self.get_reward_by_id(reward_id)
        db.session.execute(
            update(Reward)
            .where(Reward.id == reward_id)
            .values(status=RewardStatus.INACTIVE.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        db.session.refresh(reward)
        logger.info(f"Reward {reward_id} deactivated")
        return reward


def seed_default_rewards() -> int:
    """Insert default rewards that are missing. Returns number created."""
    created = 0
    for data in default_rewards():
        if db.session.get(Reward, data["id"]):
            continue
        db.session.add(Reward(**data))
        created += 1

    db.session.commit()
    return created
