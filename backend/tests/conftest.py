"""Shared fixtures: an app backed by an in-memory MongoDB, API helpers and expense builders."""

from datetime import datetime
from decimal import Decimal

import mongomock
import pytest

from splitbook import create_app
from splitbook.config import TestingConfig
from splitbook.expenses.models import Expense, UserRef


@pytest.fixture
def app():
    """Create app with a fresh in-memory database."""
    return create_app(TestingConfig, mongo_client=mongomock.MongoClient())


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    """Register a user and return (user_id, auth headers)."""
    def _register(username):
        response = client.post("/api/register", json={
            "username": username,
            "email": f"{username}@example.com",
            "password": "secret-password",
        })
        assert response.status_code == 201, response.get_json()
        body = response.get_json()
        return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}

    return _register


@pytest.fixture
def make_expense():
    """Build an Expense from plain user ids (ids double as usernames)."""
    counter = {"n": 0}

    def _make(amount, payer, participants, category="General", when=None, description="Expense"):
        counter["n"] += 1
        return Expense(
            id=f"e{counter['n']}",
            description=description,
            amount=Decimal(str(amount)),
            category=category,
            payer=UserRef(id=payer, username=payer),
            participants=tuple(UserRef(id=p, username=p) for p in participants),
            timestamp=when or datetime(2024, 5, 1, 12, 0),
        )

    return _make
