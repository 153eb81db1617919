"""Admin API endpoints for reward operations."""

import logging
import numbers

from flask import request

from app.api import api_bp
from app.api.rewards import reward_error_response
from app.services.reward_engine import RewardEngine, RewardError
from app.utils.auth import admin_required
from app.utils.response import success_response, validation_error

logger = logging.getLogger(__name__)


@api_bp.route("/admin/rewards/progress/<user_id>", methods=["GET"])
@admin_required
def get_user_progress(user_id: str):
    """Get a user's raw progress counters."""
    counters = RewardEngine().get_user_progress(user_id)
    return success_response({"user_id": user_id, "counters": counters})


@api_bp.route("/admin/rewards/progress/<user_id>", methods=["PUT"])
@admin_required
def set_user_progress(user_id: str):
    """
    Overwrite a user's progress counters.

    Bypasses trigger logic; intended for corrections and test setup.
    Body: {"counters": {"phone_verified": 1, "total_workouts": 4}}
    """
    data = request.get_json(silent=True) or {}
    counters = data.get("counters")

    if not isinstance(counters, dict):
        return validation_error({"counters": "Must be an object"})

    invalid = [
        key
        for key, value in counters.items()
        if isinstance(value, bool) or not isinstance(value, numbers.Number)
    ]
    if invalid:
        return validation_error({"counters": f"Non-numeric values for: {invalid}"})

    counters = RewardEngine().set_user_progress(user_id, counters)
    logger.info(f"Admin overwrote progress for user {user_id}")

    return success_response({"user_id": user_id, "counters": counters})


@api_bp.route("/admin/rewards/<reward_id>/deactivate", methods=["POST"])
@admin_required
def deactivate_reward(reward_id: str):
    """Take a reward out of the active catalog."""
    try:
        reward = RewardEngine().deactivate_reward(reward_id)
    except RewardError as e:
        return reward_error_response(e)

    return success_response({"reward": reward.to_dict()}, message="Reward deactivated")
