"""
Unit tests for group_service branches that are lightly exercised by integration tests.

These tests run DB-free with mocked session/query behavior.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from billbuddy.app.errors import AppError, ErrorCode, InvalidGroup
from billbuddy.app.services import group_service


def _mock_scalars_all(session: MagicMock, rows: list) -> None:
    session.execute.return_value.scalars.return_value.all.return_value = rows


def _group(**overrides):
    values = dict(
        id=1,
        name="Trip",
        created_by="alice@test.com",
        members=["alice@test.com", "bob@test.com"],
        memberships=[],
        expenses=[],
        total_expenses=Decimal("0.00"),
        pending_expenses=0,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        updated_at=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _session_with(group, caller_email):
    session = MagicMock()
    user = SimpleNamespace(id=1, email=caller_email)
    session.get.side_effect = lambda model, _id: group if model.__name__ == "Group" else user
    return session


# ── Helpers ────────────────────────────────────────────────────────────────

def test_normalize_email():
    assert group_service.normalize_email("  Alice@Example.COM ") == "alice@example.com"


def test_build_member_list_creator_first_then_deduped():
    result = group_service.build_member_list(
        "Alice@test.com",
        ["bob@test.com", "ALICE@test.com", " Carol@test.com", "bob@test.com", ""],
    )

    assert result == ["alice@test.com", "bob@test.com", "carol@test.com"]


def test_get_group_or_404_raises_when_group_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service.get_group_or_404(group_id=404, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.GROUP_NOT_FOUND
    assert err.http_status == 404


def test_get_group_for_member_passes_for_member():
    group = _group()
    session = _session_with(group, "bob@test.com")

    assert group_service.get_group_for_member(1, 2, session) is group


def test_get_group_for_member_raises_forbidden_for_outsider():
    session = _session_with(_group(), "eve@test.com")

    with pytest.raises(AppError) as exc_info:
        group_service.get_group_for_member(1, 3, session)

    err = exc_info.value
    assert err.code == ErrorCode.FORBIDDEN
    assert err.http_status == 403


def test_get_caller_email_raises_when_user_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service.get_caller_email(caller_id=99, session=session)

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND


def test_serialize_group():
    group = _group(total_expenses=Decimal("12.50"), pending_expenses=3)

    assert group_service.serialize_group(group) == {
        "id": 1,
        "name": "Trip",
        "created_by": "alice@test.com",
        "members": ["alice@test.com", "bob@test.com"],
        "total_expenses": Decimal("12.50"),
        "pending_expenses": 3,
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": None,
    }


# ── Service functions ──────────────────────────────────────────────────────

@patch("billbuddy.app.services.group_service.get_caller_email", return_value="alice@test.com")
def test_list_groups_serializes_groups(_email):
    session = MagicMock()
    rows = [_group(id=2, name="Home"), _group(id=1)]
    _mock_scalars_all(session, rows)

    result = group_service.list_groups(caller_id=1, session=session)

    assert [g["id"] for g in result] == [2, 1]
    assert result[0]["name"] == "Home"
    session.execute.assert_called_once()


@patch("billbuddy.app.services.group_service.get_group_for_member")
def test_update_group_name_only_keeps_members(mock_group):
    group = _group()
    mock_group.return_value = group
    session = MagicMock()

    result = group_service.update_group(1, 1, {"name": "  Ski Trip "}, session)

    assert result["name"] == "Ski Trip"
    assert result["members"] == ["alice@test.com", "bob@test.com"]
    assert result["updated_at"] is not None
    session.flush.assert_called_once()


@patch("billbuddy.app.services.group_service.get_group_for_member")
def test_update_group_cannot_drop_member_still_in_expenses(mock_group):
    expense = SimpleNamespace(paid_by="alice@test.com", split_between=["alice@test.com", "bob@test.com"])
    mock_group.return_value = _group(expenses=[expense])
    session = MagicMock()

    with pytest.raises(InvalidGroup) as exc_info:
        group_service.update_group(1, 1, {"members": ["carol@test.com"]}, session)

    err = exc_info.value
    assert err.code == ErrorCode.MEMBER_IN_USE
    assert err.http_status == 422
    assert err.field == "members"
    assert "bob@test.com" in err.message
    session.flush.assert_not_called()


@patch("billbuddy.app.services.group_service._set_members")
@patch("billbuddy.app.services.group_service.get_group_for_member")
def test_update_group_keeps_creator_first(mock_group, mock_set_members):
    group = _group()
    mock_group.return_value = group
    session = MagicMock()

    group_service.update_group(1, 2, {"members": ["carol@test.com", "bob@test.com"]}, session)

    mock_set_members.assert_called_once_with(
        group, ["alice@test.com", "carol@test.com", "bob@test.com"], session,
    )


@patch("billbuddy.app.services.group_service._set_members")
@patch("billbuddy.app.services.group_service.get_group_for_member")
def test_update_group_same_members_skips_rewrite(mock_group, mock_set_members):
    mock_group.return_value = _group()

    group_service.update_group(1, 1, {"members": ["BOB@test.com"]}, MagicMock())

    mock_set_members.assert_not_called()


@patch("billbuddy.app.services.group_service.get_group_for_member")
def test_delete_group_deletes_and_flushes(mock_group):
    group = _group(expenses=[SimpleNamespace(), SimpleNamespace()])
    mock_group.return_value = group
    session = MagicMock()

    group_service.delete_group(1, 1, session)

    session.delete.assert_called_once_with(group)
    session.flush.assert_called_once()
