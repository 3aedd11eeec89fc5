"""
services/settlement_service.py — Settlement business logic.

A settlement is stored as an Expense with settlement=True:
    description   "Settlement: <from> to <to>"
    paid_by       <from>  (the member handing over money)
    split_between [<from>, <to>]

Rules enforced here:
  SELF_SETTLEMENT (422)             — from_member must differ from to_member
  PAYER_NOT_MEMBER (422)            — from_member must be a group member
  SPLIT_MEMBER_NOT_IN_GROUP (422)   — to_member must be a group member
  FORBIDDEN (403)                   — caller must be a group member

Overpayment:
  A settlement larger than what from_member currently owes to_member is
  still recorded (pre-payment is valid) but returns an OVERPAYMENT warning.
  "Currently owes" is read under the same settlement policy as the balance
  view, so with "ignore" earlier settlements do not reduce the debt.
  The route wraps it in the standard envelope:
      {"data": {...}, "warnings": [{"code": "OVERPAYMENT", ...}]}

Settlements never touch the group's total/pending caches.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from billbuddy.app.errors import ErrorCode, InvalidExpense, WarningCode
from billbuddy.app.models.expense import Expense
from billbuddy.app.services.balance_service import (
    POLICY_NET,
    compute_balances,
    get_group_expenses,
    resolve_settlement_policy,
    validate_expense,
)
from billbuddy.app.services.expense_service import build_expense
from billbuddy.app.services.group_service import (
    get_caller_email,
    get_group_for_member,
    normalize_email,
)

logger = logging.getLogger(__name__)


def settlement_description(from_member: str, to_member: str) -> str:
    return f"Settlement: {from_member} to {to_member}"


def _outstanding_debt(
        group_id: int,
        members: list[str],
        debtor: str,
        creditor: str,
        session: Session,
        net_settlements: bool = True,
) -> Decimal:
    """
    The most `debtor` can pay `creditor` without either crossing zero:
    min(what the debtor owes, what the creditor is owed). Earlier settlements
    count only when `net_settlements` is on. Zero when either side is
    already settled.
    """
    balances = compute_balances(
        members, get_group_expenses(group_id, session), net_settlements=net_settlements,
    )
    owed = min(-balances[debtor], balances[creditor])
    return owed if owed > 0 else Decimal("0.00")


# ── Public service functions ───────────────────────────────────────────────

def record_settlement(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
        settlement_policy: str = POLICY_NET,
) -> tuple[Expense, list[dict]]:
    """
    Records a transfer from `from_member` to `to_member`.

    Args:
        data: Validated dict from CreateSettlementSchema. Keys: to_member,
              amount, and optional from_member (defaults to the caller).
        settlement_policy: "net" or "ignore"; decides whether earlier
              settlements reduce the debt checked for OVERPAYMENT.

    Returns:
        (Expense, warnings). An empty warnings list means no warnings.
    """
    net_settlements = resolve_settlement_policy(settlement_policy)
    group = get_group_for_member(group_id, caller_id, session)
    caller_email = get_caller_email(caller_id, session)

    from_member = normalize_email(data.get("from_member") or caller_email)
    to_member = normalize_email(data["to_member"])
    amount: Decimal = data["amount"]

    if from_member == to_member:
        raise InvalidExpense(
            "A settlement cannot be made to yourself.",
            code=ErrorCode.SELF_SETTLEMENT,
            field="to_member",
        )

    expense = build_expense(
        group_id=group_id,
        description=settlement_description(from_member, to_member),
        amount=amount,
        paid_by=from_member,
        split_between=[from_member, to_member],
        created_by=caller_email,
        settlement=True,
    )
    validate_expense(expense, set(group.members))

    warnings: list[dict] = []
    current_debt = _outstanding_debt(
        group_id, group.members, from_member, to_member, session, net_settlements,
    )
    if amount > current_debt:
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Settlement of {amount} exceeds the {current_debt} currently owed "
                f"by {from_member} to {to_member}. Recording anyway."
            ),
        })

    group.expenses.append(expense)
    session.flush()

    logger.info(
        "Settlement %s recorded in group %s: %s -> %s %s",
        expense.id, group_id, from_member, to_member, amount,
    )
    return expense, warnings


def list_settlements(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[Expense]:
    """Returns the group's settlement records, newest first."""
    get_group_for_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.settlement.is_(True),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
