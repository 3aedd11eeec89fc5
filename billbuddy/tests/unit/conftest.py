"""
tests/unit/conftest.py — Shared setup for DB-free unit tests.

Some tests build transient ORM objects (Expense, Bill). SQLAlchemy resolves
string relationship targets across every mapped class on first use, so all
model modules must be imported even when only tests/unit is collected.
"""

from billbuddy.app.models import (  # noqa: F401
    bill,
    expense,
    group,
    membership,
    refresh_token,
    user,
)
