"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at an in-memory SQLite database unless TEST_DATABASE_URL is set.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted so tests are isolated.
  - MEDIA_ROOT is a session temp directory.
  - The test client does not keep a cookie jar. Tests that exercise cookies
    send the Cookie header explicitly so the token source is never ambiguous.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)    → public user dict
  - login(client, ...)       → dict with user + tokens
  - register_and_login(...)  → dict with user + tokens
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - cookie_header(**cookies) → {"Cookie": "name=value; ..."}
  - set_cookies(resp)        → {name: raw Set-Cookie header}
"""

from __future__ import annotations

import pytest

from backend.app import create_app
from backend.app.extensions import db as _db


PASSWORD = "Password1!"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates all tables, and drops them at teardown.
    """
    media_root = tmp_path_factory.mktemp("media")
    flask_app = create_app("testing", overrides={"MEDIA_ROOT": str(media_root)})

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        from sqlalchemy import text
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM subscriptions"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client without a cookie jar. Each test gets a fresh client."""
    return app.test_client(use_cookies=False)


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    username: str = "alice",
    email: str | None = None,
    password: str = PASSWORD,
    full_name: str | None = None,
) -> dict:
    """Registers a new user and returns the public user dict."""
    if email is None:
        email = f"{username}@test.com"
    if full_name is None:
        full_name = username.title()
    resp = client.post(
        "/api/v1/users/register",
        json={
            "username": username,
            "email": email,
            "full_name": full_name,
            "password": password,
        },
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, username: str, password: str = PASSWORD) -> dict:
    """
    Logs in a user and returns the response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/users/login",
        json={"username": username, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def register_and_login(client, username: str = "alice") -> dict:
    register(client, username)
    return login(client, username)


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def cookie_header(**cookies: str) -> dict:
    """Returns a Cookie header carrying the given cookies."""
    return {"Cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


def set_cookies(resp) -> dict:
    """Maps cookie name → raw Set-Cookie header value for a response."""
    result = {}
    for header in resp.headers.getlist("Set-Cookie"):
        name = header.split("=", 1)[0]
        result[name] = header
    return result
