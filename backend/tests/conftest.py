"""Pytest configuration and fixtures."""

import pytest
from flask_jwt_extended import create_access_token

from app import create_app, db
from app.models import Reward
from app.services import RewardEngine, seed_default_rewards


@pytest.fixture
def app():
    """Create and configure a test application instance."""
    app = create_app("testing")

    with app.app_context():
        db.create_all()
        seed_default_rewards()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def engine(app):
    """Reward engine bound to the test application."""
    return RewardEngine()


@pytest.fixture
def make_reward(app):
    """Factory that persists a reward with sensible defaults."""

    def _make_reward(reward_id: str, **overrides) -> Reward:
        data = {
            "id": reward_id,
            "name": f"Reward {reward_id}",
            "description": "Test reward",
            "type": "badge",
            "value": "Test badge",
            "trigger_type": "milestone",
            "trigger_data": {},
            "status": "active",
            "quantity_limit": None,
            "quantity_claimed": 0,
            "expires_at": None,
        }
        data.update(overrides)
        reward = Reward(**data)
        db.session.add(reward)
        db.session.commit()
        return reward

    return _make_reward


def _auth_headers(user_id: str) -> dict:
    token = create_access_token(identity=user_id)
    return {"Authorization": f"Bearer {token}"}


class AuthenticatedClient:
    """Test client wrapper that sends a bearer token with every request."""

    def __init__(self, client, headers):
        self._client = client
        self._headers = headers

    def get(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.get(*args, **kwargs)

    def post(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.post(*args, **kwargs)

    def put(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.put(*args, **kwargs)


@pytest.fixture
def auth_headers(app):
    """Authorization headers for a regular member."""
    return _auth_headers("user-1")


@pytest.fixture
def auth_client(client, auth_headers):
    """Create an authenticated test client wrapper."""
    return AuthenticatedClient(client, auth_headers)


@pytest.fixture
def admin_client(client, app):
    """Authenticated client for an admin user (see TestingConfig)."""
    return AuthenticatedClient(client, _auth_headers("admin-1"))
