"""
Shared fixtures: an in-memory SQLite database, a TestClient and helpers
for creating users and tours through the API.
"""

import os

# Settings are read at import time, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from natours.db.database import SessionLocal, clear_db, engine, init_db
from natours.db.models import User
from natours.main import app

API = "/api/v1"

PASSWORD = "pass1234"


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def schema():
    init_db()
    yield


@pytest.fixture(autouse=True)
def empty_tables():
    """Every test starts from empty tables."""
    clear_db()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# HTTP client and helpers
# ============================================================================

@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signup(client: TestClient, name: str = "Jonas", email: str = "jonas@example.com") -> Dict[str, Any]:
    response = client.post(
        f"{API}/users/signup",
        json={
            "name": name,
            "email": email,
            "password": PASSWORD,
            "passwordConfirm": PASSWORD,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def set_role(user_id: int, role: str) -> None:
    with engine.begin() as conn:
        conn.execute(update(User).where(User.id == user_id).values(role=role))


def tour_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "name": "The Forest Hiker",
        "duration": 5,
        "max_group_size": 25,
        "difficulty": "easy",
        "price": 397,
        "summary": "Breathtaking hike through the Canadian Banff National Park",
        "image_cover": "tour-1-cover.jpg",
        "start_dates": ["2021-04-25", "2021-07-20", "2021-10-05"],
        "start_location_coordinates": [-115.570154, 51.178456],
        "start_location_address": "224 Banff Ave, Banff, AB, Canada",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def user(client):
    """A regular user: {"token", "id"}."""
    body = signup(client, name="Laura", email="laura@example.com")
    return {"token": body["token"], "id": body["data"]["user"]["id"]}


@pytest.fixture
def admin(client):
    """An admin user: {"token", "id"}."""
    body = signup(client, name="Admin", email="admin@example.com")
    user_id = body["data"]["user"]["id"]
    set_role(user_id, "admin")
    return {"token": body["token"], "id": user_id}


@pytest.fixture
def create_tour(client, admin):
    """Factory fixture: create a tour as admin and return its body."""

    def _create(**overrides: Any) -> Dict[str, Any]:
        response = client.post(
            f"{API}/tours",
            json=tour_payload(**overrides),
            headers=auth_header(admin["token"]),
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]["tour"]

    return _create
