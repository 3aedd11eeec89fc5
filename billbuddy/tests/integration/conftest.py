"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database in TestingConfig: in-memory SQLite by
    default, or TEST_DATABASE_URL when a real PostgreSQL is supplied.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted child tables first so tests are
    isolated.

In-memory SQLite lives as long as its connection; Flask-SQLAlchemy pins
such URLs to one shared connection (StaticPool), so every request sees the
same tables.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)     → dict with user + tokens
  - auth_headers(token)       → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)   → group dict
  - make_expense(...)         → HTTP response
  - make_settlement(...)      → HTTP response
  - make_bill(...)            → HTTP response
"""

from __future__ import annotations

import pytest

from billbuddy.app import create_app
from billbuddy.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

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
    """
    Deletes all rows between tests, children before parents.

    autouse=True means this runs after EVERY test in the integration suite
    without needing to be declared in each test function.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.begin() as conn:
            for table in reversed(_db.metadata.sorted_tables):
                conn.execute(table.delete())


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    if email is None:
        email = f"{name}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "display_name": name.title()},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, email: str, password: str = "Password1") -> dict:
    """Logs in a user and returns the response data dict."""
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(
    client,
    token: str,
    name: str = "Test Group",
    members: list[str] | None = None,
) -> dict:
    """
    Creates a group and returns the group data dict.
    The caller (token owner) becomes the first member.
    """
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name, "members": members or []},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_expense(
    client,
    token: str,
    group_id: int,
    amount: str,
    paid_by: str | None = None,
    split_between: list[str] | None = None,
    description: str = "Test Expense",
):
    """
    Creates an expense and returns the HTTP response.
    Omitted paid_by / split_between fall back to the server defaults
    (the caller / every member).
    """
    payload: dict = {"description": description, "amount": amount}
    if paid_by is not None:
        payload["paid_by"] = paid_by
    if split_between is not None:
        payload["split_between"] = split_between

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def make_settlement(
    client,
    token: str,
    group_id: int,
    to_member: str,
    amount: str,
    from_member: str | None = None,
):
    """Records a settlement and returns the HTTP response."""
    payload: dict = {"to_member": to_member, "amount": amount}
    if from_member is not None:
        payload["from_member"] = from_member
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json=payload,
        headers=auth_headers(token),
    )


def make_bill(
    client,
    token: str,
    name: str = "Electricity",
    amount: str = "120.00",
    due_date: str = "2099-01-15",
    **extra,
):
    """Creates a bill and returns the HTTP response."""
    payload = {"name": name, "amount": amount, "due_date": due_date, **extra}
    return client.post("/api/v1/bills/", json=payload, headers=auth_headers(token))


def balances_by_member(payload: dict) -> dict[str, str]:
    """{"member": "balance"} from a balances response's data dict."""
    return {row["member"]: row["balance"] for row in payload["balances"]}
