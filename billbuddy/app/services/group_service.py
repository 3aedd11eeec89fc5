"""
services/group_service.py — Group and membership business logic.

Members are identified by email. The creator's email is always the first
entry of the member list; the rest are kept in the order they were given,
trimmed, lower-cased and de-duplicated.

Authorization rules:
  - Any member may read, edit or delete the group.
  - Non-members receive FORBIDDEN (403); unknown groups GROUP_NOT_FOUND (404).

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from billbuddy.app.errors import AppError, ErrorCode, InvalidGroup
from billbuddy.app.models.group import Group
from billbuddy.app.models.membership import Membership
from billbuddy.app.models.user import User
from billbuddy.app.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)


# ── Shared helpers (also used by the expense, settlement and balance services) ──

def normalize_email(value: str) -> str:
    return value.strip().lower()


def get_caller_email(caller_id: int, session: Session) -> str:
    """Returns the authenticated user's email, the member identifier in groups."""
    user = session.get(User, caller_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {caller_id} does not exist.",
            404,
        )
    return user.email


def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_group_for_member(group_id: int, caller_id: int, session: Session) -> Group:
    """
    Returns the group when the caller is one of its members.

    Existence is checked first, so an unknown group is a 404 for everyone
    and a known group is a 403 for outsiders.
    """
    group = get_group_or_404(group_id, session)
    caller_email = get_caller_email(caller_id, session)
    if caller_email not in group.members:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
    return group


def build_member_list(creator_email: str, members: Iterable[str]) -> list[str]:
    """Creator first, then the given members normalised and de-duplicated."""
    creator = normalize_email(creator_email)
    ordered = [creator]
    seen = {creator}
    for raw in members:
        email = normalize_email(raw)
        if not email or email in seen:
            continue
        seen.add(email)
        ordered.append(email)
    return ordered


def serialize_group(group: Group) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "created_by": group.created_by,
        "members": group.members,
        "total_expenses": group.total_expenses,
        "pending_expenses": group.pending_expenses,
        "created_at": isoformat(group.created_at),
        "updated_at": isoformat(group.updated_at),
    }


def _set_members(group: Group, members: list[str], session: Session) -> None:
    # Old rows are flushed out first so re-adding an email does not trip the
    # (group_id, member_email) unique constraint inside a single flush.
    if group.memberships:
        group.memberships.clear()
        session.flush()
    for position, email in enumerate(members):
        group.memberships.append(Membership(member_email=email, position=position))
    session.flush()


def _members_referenced_by_expenses(group: Group) -> set[str]:
    referenced: set[str] = set()
    for expense in group.expenses:
        referenced.add(expense.paid_by)
        referenced.update(expense.split_between)
    return referenced


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        members: Iterable[str],
        session: Session,
) -> dict:
    """
    Creates a group. The creator becomes its first member.

    Args:
        name:       Group name (validated by schema — non-empty, max 100 chars).
        creator_id: The authenticated user (flask.g.user_id).
        members:    Additional member emails. Unregistered emails are allowed.

    Returns: dict with group details and the ordered member list.
    """
    creator_email = get_caller_email(creator_id, session)
    member_list = build_member_list(creator_email, members)

    group = Group(
        name=name.strip(),
        created_by=creator_email,
        total_expenses=Decimal("0.00"),
        pending_expenses=0,
    )
    session.add(group)
    session.flush()

    _set_members(group, member_list, session)

    logger.info("Group %s created by %s with %d member(s)", group.id, creator_email, len(member_list))
    return serialize_group(group)


def list_groups(caller_id: int, session: Session) -> list[dict]:
    """Returns every group whose member list contains the caller, newest first."""
    caller_email = get_caller_email(caller_id, session)

    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.member_email == caller_email)
        .order_by(Group.created_at.desc(), Group.id.desc())
    )
    groups = session.execute(stmt).scalars().all()
    return [serialize_group(g) for g in groups]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    group = get_group_for_member(group_id, caller_id, session)
    return serialize_group(group)


def update_group(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> dict:
    """
    Partially updates a group's name and/or member list.

    The creator always stays first, even when the new list omits them.
    A member who still appears as payer or participant of a recorded
    expense cannot be removed (MEMBER_IN_USE, 422): the ledger would no
    longer balance without them.
    """
    group = get_group_for_member(group_id, caller_id, session)

    if "name" in data:
        group.name = data["name"].strip()

    if "members" in data:
        new_members = build_member_list(group.created_by, data["members"])
        missing = _members_referenced_by_expenses(group) - set(new_members)
        if missing:
            raise InvalidGroup(
                f"Cannot remove {', '.join(sorted(missing))}: "
                f"still referenced by expenses in group {group_id}.",
                code=ErrorCode.MEMBER_IN_USE,
                field="members",
            )
        if new_members != group.members:
            _set_members(group, new_members, session)

    group.updated_at = utcnow()
    session.flush()

    logger.info("Group %s updated", group_id)
    return serialize_group(group)


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """Deletes the group together with its memberships and expenses."""
    group = get_group_for_member(group_id, caller_id, session)
    expense_count = len(group.expenses)
    session.delete(group)
    session.flush()
    logger.info("Group %s deleted with %d expense(s)", group_id, expense_count)
