"""WSGI entry point."""

import os

from app import create_app, db
from app.services.reward_engine import seed_default_rewards

app = create_app(os.environ.get("FLASK_ENV", "production"))


# Make sure the default catalog exists on startup
with app.app_context():
    db.create_all()
    try:
        seed_default_rewards()
    except Exception as e:
        db.session.rollback()
        app.logger.warning(f"Failed to seed default rewards: {e}")


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
