"""
services/expense_service.py — Expense business logic.

Expenses are immutable once written: this module only creates and lists.
They are removed when their group is deleted.

Rules enforced here:
  FORBIDDEN (403)                   — caller must be a group member
  PAYER_NOT_MEMBER (422)            — paid_by must be a group member
  SPLIT_MEMBER_NOT_IN_GROUP (422)   — every participant must be a group member
  EMPTY_SPLIT (422)                 — at least one participant
  INVALID_EXPENSE (422)             — amount must be positive

The membership and amount checks are the ledger aggregator's own
(balance_service.validate_expense), so nothing reaches the table that
compute_balances() would later reject.

Group caches:
  Every regular expense adds its amount to group.total_expenses and bumps
  group.pending_expenses by one. Settlements (settlement_service) do not.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from billbuddy.app.models.expense import Expense, ExpenseParticipant
from billbuddy.app.services.balance_service import validate_expense
from billbuddy.app.services.group_service import (
    get_caller_email,
    get_group_for_member,
    normalize_email,
)
from billbuddy.app.timeutil import isoformat

logger = logging.getLogger(__name__)


# ── Helpers shared with settlement_service ─────────────────────────────────

def normalize_split(members: Iterable[str]) -> list[str]:
    """Trims, lower-cases and de-duplicates while keeping first-seen order."""
    ordered: list[str] = []
    seen: set[str] = set()
    for raw in members:
        email = normalize_email(raw)
        if email and email not in seen:
            seen.add(email)
            ordered.append(email)
    return ordered


def build_expense(
        group_id: int,
        description: str,
        amount,
        paid_by: str,
        split_between: list[str],
        created_by: str,
        settlement: bool = False,
) -> Expense:
    """Builds a transient Expense with its participant rows in split order."""
    expense = Expense(
        group_id=group_id,
        description=description,
        amount=amount,
        paid_by=paid_by,
        created_by=created_by,
        settlement=settlement,
    )
    for position, member in enumerate(split_between):
        expense.participants.append(
            ExpenseParticipant(member_email=member, position=position)
        )
    return expense


def serialize_expense(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "description": expense.description,
        "amount": expense.amount,
        "paid_by": expense.paid_by,
        "split_between": expense.split_between,
        "created_by": expense.created_by,
        "settlement": expense.settlement,
        "created_at": isoformat(expense.created_at),
    }


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records a new shared expense for a group.

    Args:
        group_id:  The group this expense belongs to.
        caller_id: The authenticated user creating the expense (from flask.g).
        data:      Validated dict from CreateExpenseSchema. `paid_by` defaults
                   to the caller; `split_between` defaults to every member.

    Returns:
        The newly created Expense ORM object.
    """
    group = get_group_for_member(group_id, caller_id, session)
    caller_email = get_caller_email(caller_id, session)

    paid_by = normalize_email(data.get("paid_by") or caller_email)
    split_between = normalize_split(data.get("split_between") or group.members)

    expense = build_expense(
        group_id=group_id,
        description=data["description"].strip(),
        amount=data["amount"],
        paid_by=paid_by,
        split_between=split_between,
        created_by=caller_email,
    )
    validate_expense(expense, set(group.members))

    group.expenses.append(expense)
    group.total_expenses = (group.total_expenses or 0) + expense.amount
    group.pending_expenses = (group.pending_expenses or 0) + 1
    session.flush()

    logger.info(
        "Expense %s added to group %s: %s paid %s split %d way(s)",
        expense.id, group_id, paid_by, expense.amount, len(split_between),
    )
    return expense


def list_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
        include_settlements: bool = True,
) -> list[Expense]:
    """Returns the group's expenses, newest first."""
    get_group_for_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(Expense.group_id == group_id)
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    if not include_settlements:
        stmt = stmt.where(Expense.settlement.is_(False))
    return list(session.execute(stmt).scalars().all())
