"""Rewards API endpoints."""

import logging

from flask import current_app, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from app.api import api_bp
from app.extensions import limiter
from app.models.reward import RewardTriggerType, UserRewardClaim
from app.services.reward_engine import RewardEngine, RewardError
from app.utils import (
    conflict,
    error_response,
    gone,
    not_found,
    success_response,
    validation_error,
)

logger = logging.getLogger(__name__)


def serialize_claim(claim: UserRewardClaim) -> dict:
    """Claim with the reward it grants."""
    data = claim.to_dict()
    data["reward_name"] = claim.reward.name if claim.reward else None
    data["reward_value"] = claim.reward.value if claim.reward else None
    return data


def reward_error_response(error: RewardError):
    """Translate an engine error into an API error response."""
    if error.kind in (RewardError.REWARD_NOT_FOUND, RewardError.CLAIM_NOT_FOUND):
        return not_found(error.message, error.details)
    if error.kind == RewardError.USER_NOT_ELIGIBLE:
        return conflict(error.message, error.details)
    if error.kind == RewardError.CLAIM_EXPIRED:
        return gone(error.message, error.details)
    return error_response(error.kind, error.message, error.details)


def _coupon_rate_limit() -> str:
    return current_app.config["COUPON_VALIDATE_RATE_LIMIT"]


@api_bp.route("/rewards", methods=["GET"])
@jwt_required()
def get_active_rewards():
    """Get all rewards that can currently be claimed."""
    rewards = RewardEngine().get_active_rewards()
    return success_response({"rewards": [r.to_dict() for r in rewards]})


@api_bp.route("/rewards/<reward_id>", methods=["GET"])
@jwt_required()
def get_reward(reward_id: str):
    """Get a single reward, available or not."""
    try:
        reward = RewardEngine().get_reward_by_id(reward_id)
    except RewardError as e:
        return reward_error_response(e)

    data = reward.to_dict()
    data["expiry_status"] = reward.expiry_status()
    return success_response({"reward": data})


@api_bp.route("/rewards/<reward_id>/eligibility", methods=["GET"])
@jwt_required()
def check_eligibility(reward_id: str):
    """Check if the current user can claim a reward."""
    user_id = str(get_jwt_identity())

    try:
        result = RewardEngine().check_reward_eligibility(user_id, reward_id)
    except RewardError as e:
        return reward_error_response(e)

    return success_response(result)


@api_bp.route("/rewards/<reward_id>/claim", methods=["POST"])
@jwt_required()
def claim_reward(reward_id: str):
    """Claim a reward for the current user."""
    user_id = str(get_jwt_identity())
    data = request.get_json(silent=True) or {}

    trigger_data = data.get("trigger_data") or {}
    if not isinstance(trigger_data, dict):
        return validation_error({"trigger_data": "Must be an object"})

    try:
        result = RewardEngine().claim_reward(user_id, reward_id, trigger_data)
    except RewardError as e:
        return reward_error_response(e)

    return success_response(
        {"claim": serialize_claim(result["claim"])},
        message=result["message"],
        status_code=201,
    )


@api_bp.route("/rewards/claims", methods=["GET"])
@jwt_required()
def get_claims():
    """Get the current user's claims. Use ?active=true for usable ones only."""
    user_id = str(get_jwt_identity())
    engine = RewardEngine()

    if request.args.get("active", "").lower() in ("1", "true", "yes"):
        claims = engine.get_user_active_claims(user_id)
    else:
        claims = engine.get_user_reward_claims(user_id)

    return success_response({"claims": [serialize_claim(c) for c in claims]})


@api_bp.route("/rewards/claims/<claim_id>/redeem", methods=["POST"])
@jwt_required()
def redeem_claim(claim_id: str):
    """Redeem one of the current user's claims."""
    user_id = str(get_jwt_identity())

    try:
        result = RewardEngine().redeem_reward_claim(user_id, claim_id)
    except RewardError as e:
        return reward_error_response(e)

    return success_response({"redeemed": True}, message=result["message"])


@api_bp.route("/rewards/summary", methods=["GET"])
@jwt_required()
def get_summary():
    """Get the current user's reward summary."""
    user_id = str(get_jwt_identity())
    summary = RewardEngine().get_user_reward_summary(user_id)
    summary["active_claims"] = [serialize_claim(c) for c in summary["active_claims"]]
    return success_response(summary)


@api_bp.route("/rewards/progress", methods=["GET"])
@jwt_required()
def get_progress():
    """Get progress toward every available reward."""
    user_id = str(get_jwt_identity())
    progress = RewardEngine().get_user_reward_progress(user_id)
    for item in progress:
        item["reward"] = item["reward"].to_dict()
    return success_response({"progress": progress})


@api_bp.route("/rewards/trigger", methods=["POST"])
@jwt_required()
def trigger_rewards():
    """Report a completed user action and auto-claim unlocked rewards.

    Body: {"trigger_type": "workout_streak", "trigger_data": {"streak_count": 3}}
    """
    user_id = str(get_jwt_identity())
    data = request.get_json(silent=True) or {}

    trigger_type = data.get("trigger_type")
    valid_types = [t.value for t in RewardTriggerType]
    if trigger_type not in valid_types:
        return validation_error({"trigger_type": f"Must be one of {valid_types}"})

    trigger_data = data.get("trigger_data") or {}
    if not isinstance(trigger_data, dict):
        return validation_error({"trigger_data": "Must be an object"})

    streak_count = trigger_data.get("streak_count")
    if streak_count is not None and (
        isinstance(streak_count, bool)
        or not isinstance(streak_count, int)
        or streak_count < 0
    ):
        return validation_error({"streak_count": "Must be a non-negative integer"})

    result = RewardEngine().trigger_reward_check(user_id, trigger_type, trigger_data)

    return success_response(
        {
            "triggered_rewards": [
                {
                    "success": r["success"],
                    "claim": serialize_claim(r["claim"]),
                    "message": r["message"],
                }
                for r in result["triggered_rewards"]
            ],
            "available_rewards": [r.to_dict() for r in result["available_rewards"]],
            "skipped_rewards": result["skipped_rewards"],
        }
    )


@api_bp.route("/rewards/coupons/validate", methods=["POST"])
@jwt_required()
@limiter.limit(_coupon_rate_limit)
def validate_coupon():
    """Validate a coupon code presented in-store."""
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code:
        return validation_error({"code": "Coupon code is required"})

    try:
        result = RewardEngine().validate_coupon_code(code)
    except RewardError as e:
        return reward_error_response(e)

    response = {"valid": result["valid"]}
    if result.get("claim") is not None:
        response["claim"] = serialize_claim(result["claim"])
    if result.get("reward") is not None:
        response["reward"] = result["reward"].to_dict()

    return success_response(response, message=result["message"])
