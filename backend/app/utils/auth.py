"""Authentication utilities."""

import os
from functools import wraps

from flask import current_app
from flask_jwt_extended import get_jwt_identity, jwt_required

from app.utils.response import forbidden


def get_admin_ids() -> list[str]:
    """Get admin user IDs from app config or environment."""
    if current_app and current_app.config.get("ADMIN_USER_IDS"):
        return current_app.config["ADMIN_USER_IDS"]
    admin_ids_str = os.environ.get("ADMIN_USER_IDS", "")
    return [x.strip() for x in admin_ids_str.split(",") if x.strip()]


def admin_required(fn):
    """
    Decorator that requires the user to be an admin.

    Must be used instead of @jwt_required().
    """

    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        user_id = str(get_jwt_identity())

        if user_id not in get_admin_ids():
            return forbidden("Admin access required")

        return fn(*args, **kwargs)

    return wrapper
