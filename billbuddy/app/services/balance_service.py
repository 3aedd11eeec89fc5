"""
services/balance_service.py — Ledger aggregation and debt simplification.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The canonical formula must not be reimplemented elsewhere in the codebase.

compute_balances() is pure: it reads `amount`, `paid_by`, `split_between`
and `settlement` from whatever records it is handed (ORM Expense rows, or
any object exposing those attributes) and touches nothing else.

Algorithm:
  1. Every member starts at 0.
  2. For a regular expense, share = amount / len(split_between). The payer
     gains the full amount and every participant, the payer included,
     loses one share, so a payer inside the split nets amount - share.
  3. Settlement records move money from the recipient back to the payer
     when settlements are netted (the default). With net_settlements=False
     they are skipped, which matches the behaviour of earlier releases.
  4. Shares are accumulated as Decimal at full context precision, in
     expense order and then participant order. Each balance is rounded
     half-up to cents once, at the very end.

Conservation: with no settlements the rounded balances sum to zero within
0.01 per expense. Settlements move whole cents and keep the sum unchanged.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - get_balance_response() takes a session and the settlement policy as
    explicit arguments and returns plain dicts.
"""

from __future__ import annotations

import json
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Iterator, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from billbuddy.app.errors import AppError, ErrorCode, InvalidExpense, InvalidGroup, InvalidInput
from billbuddy.app.models.expense import Expense

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

POLICY_NET = "net"
POLICY_IGNORE = "ignore"


# ── Pure core ──────────────────────────────────────────────────────────────

def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so a float like 0.1 becomes Decimal("0.1"), not its binary expansion.
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidExpense(f"Amount {value!r} is not a number.", field="amount")


def validate_expense(expense: Any, member_set: set[str]) -> tuple[Decimal, str, list[str]]:
    """Checks one record against the ledger contract; returns (amount, payer, split)."""
    amount = _to_decimal(expense.amount)
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidExpense(
            f"Expense amount must be positive, got {expense.amount}.",
            field="amount",
        )

    split = list(expense.split_between or ())
    if not split:
        raise InvalidExpense(
            "An expense must be split between at least one member.",
            code=ErrorCode.EMPTY_SPLIT,
            field="split_between",
        )

    if expense.paid_by not in member_set:
        raise InvalidExpense(
            f"Payer {expense.paid_by} is not a member of this group.",
            code=ErrorCode.PAYER_NOT_MEMBER,
            field="paid_by",
        )

    for member in split:
        if member not in member_set:
            raise InvalidExpense(
                f"{member} is not a member of this group.",
                code=ErrorCode.SPLIT_MEMBER_NOT_IN_GROUP,
                field="split_between",
            )

    return amount, expense.paid_by, split


def compute_balances(
        members: Sequence[str],
        expenses: Iterable[Any],
        net_settlements: bool = True,
) -> dict[str, Decimal]:
    """
    Returns {member: balance} for every member, rounded to cents.

    Positive: the member is owed money. Negative: the member owes money.

    Raises:
        InvalidGroup    -- `members` is empty.
        InvalidExpense  -- an amount <= 0, an empty split, a participant or
                           payer outside `members`. Nothing is returned on
                           failure; there is no partial result.
    """
    members = list(members)
    if not members:
        raise InvalidGroup("A group must have at least one member.", field="members")

    member_set = set(members)
    balances: dict[str, Decimal] = {member: ZERO for member in members}

    # Validate everything before touching the accumulator.
    validated = [
        (validate_expense(expense, member_set), bool(expense.settlement))
        for expense in expenses
    ]

    for (amount, payer, split), is_settlement in validated:
        if is_settlement:
            if not net_settlements:
                continue
            recipients = [m for m in split if m != payer]
            if not recipients:
                continue
            portion = amount / len(recipients)
            balances[payer] += amount
            for recipient in recipients:
                balances[recipient] -= portion
            continue

        share = amount / len(split)
        balances[payer] += amount
        for participant in split:
            balances[participant] -= share

    # "+ ZERO" turns a rounded -0.00 into 0.00.
    return {
        member: balance.quantize(CENT, rounding=ROUND_HALF_UP) + ZERO
        for member, balance in balances.items()
    }


def balance_status(balance: Decimal) -> str:
    """'owed' when positive, 'owes' when negative, 'settled' at zero."""
    if balance > ZERO:
        return "owed"
    if balance < ZERO:
        return "owes"
    return "settled"


def simplify_debts(balances: dict[str, Decimal]) -> list[dict]:
    """
    Greedy minimum cash flow debt simplification.

    Repeatedly matches the largest debtor with the largest creditor until
    one side runs out. For N members, produces at most N-1 transfers.
    Ties are broken by member identifier so the output is deterministic.

    Returns:
        List of {"from_member": str, "to_member": str, "amount": Decimal}.
        An empty list means everyone is settled.
    """
    creditors = sorted(
        [(member, amt) for member, amt in balances.items() if amt > 0],
        key=lambda x: (-x[1], x[0]),
    )
    debtors = sorted(
        [(member, -amt) for member, amt in balances.items() if amt < 0],
        key=lambda x: (-x[1], x[0]),
    )

    transactions: list[dict] = []
    i = j = 0

    while i < len(creditors) and j < len(debtors):
        creditor, credit = creditors[i]
        debtor, debt = debtors[j]

        transfer = min(credit, debt)
        transactions.append({
            "from_member": debtor,
            "to_member": creditor,
            "amount": transfer,
        })

        creditors[i] = (creditor, credit - transfer)
        debtors[j] = (debtor, debt - transfer)

        if creditors[i][1] == ZERO:
            i += 1
        if debtors[j][1] == ZERO:
            j += 1

    return transactions


# ── Store-backed view ──────────────────────────────────────────────────────

def resolve_settlement_policy(policy: str) -> bool:
    """Maps the SETTLEMENT_POLICY config value to compute_balances' flag."""
    if policy == POLICY_NET:
        return True
    if policy == POLICY_IGNORE:
        return False
    raise InvalidInput(
        f"Unknown settlement policy {policy!r}; expected 'net' or 'ignore'.",
        field="settlement_policy",
    )


def get_group_expenses(group_id: int, session: Session) -> list[Expense]:
    """All expenses of a group in creation order, the canonical accumulation order."""
    stmt = (
        select(Expense)
        .where(Expense.group_id == group_id)
        .order_by(Expense.created_at.asc(), Expense.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_balance_response(
        group_id: int,
        caller_id: int,
        session: Session,
        settlement_policy: str = POLICY_NET,
) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)  -- group does not exist.
        AppError(FORBIDDEN, 403)        -- caller is not a member.
        InvalidExpense (422)            -- stored data breaks the ledger contract.
    """
    from billbuddy.app.services.group_service import get_group_for_member  # avoid circular import

    net = resolve_settlement_policy(settlement_policy)
    group = get_group_for_member(group_id, caller_id, session)
    expenses = get_group_expenses(group_id, session)

    balances = compute_balances(group.members, expenses, net_settlements=net)

    # Display order: largest absolute balance first, then stored member order.
    order = {member: index for index, member in enumerate(group.members)}
    ranked = sorted(balances.items(), key=lambda item: (-abs(item[1]), order[item[0]]))

    balance_sum = sum(balances.values(), ZERO)
    if balance_sum != ZERO:
        logger.debug("Group %s balances sum to %s after rounding", group_id, balance_sum)

    return {
        "group_id": group_id,
        "settlement_policy": settlement_policy,
        "balances": [
            {
                "member": member,
                "balance": str(balance),
                "status": balance_status(balance),
            }
            for member, balance in ranked
        ],
        "suggested_settlements": [
            {
                "from_member": t["from_member"],
                "to_member": t["to_member"],
                "amount": str(t["amount"]),
            }
            for t in simplify_debts(balances)
        ],
        "balance_sum": str(balance_sum),
    }


# ── Server-sent events ─────────────────────────────────────────────────────

def format_sse(event: str, data: dict, event_id: int | None = None) -> str:
    """Serialises one server-sent event frame."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, default=str, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


class BalanceStream:
    """
    Iterator of SSE frames that owns its subscription.

    close() cancels the subscription even when no frame was ever pulled.
    A plain generator cannot do that: its finally block only runs once it
    has started.
    """

    def __init__(self, subscription, frames: Iterator[str]) -> None:
        self.subscription = subscription
        self._frames = frames

    def __iter__(self) -> "BalanceStream":
        return self

    def __next__(self) -> str:
        return next(self._frames)

    def close(self) -> None:
        try:
            self._frames.close()
        finally:
            self.subscription.cancel()


def balance_event_stream(
        subscription,
        render: Callable[[], dict],
        keepalive_seconds: float = 15,
        max_events: int | None = None,
) -> BalanceStream:
    """
    Yields the balance view once, then again after every change event.

    `render` re-runs the aggregator against the store. A comment frame is
    sent whenever `keepalive_seconds` pass without a change so proxies keep
    the connection open. The stream ends when the subscription is cancelled,
    when a "group.deleted" event arrives, when `render` raises an AppError
    (sent as an "error" frame), or after `max_events` re-renders. Closing
    the returned stream, started or not, cancels the subscription.
    """
    frames = _balance_frames(subscription, render, keepalive_seconds, max_events)
    return BalanceStream(subscription, frames)


def _balance_frames(
        subscription,
        render: Callable[[], dict],
        keepalive_seconds: float,
        max_events: int | None,
) -> Iterator[str]:
    delivered = 0
    try:
        try:
            yield format_sse("balances", render())
        except AppError as exc:
            yield format_sse("error", exc.to_dict()["error"])
            return

        while not subscription.cancelled:
            if max_events is not None and delivered >= max_events:
                return

            event = subscription.get(timeout=keepalive_seconds)
            if event is None:
                if subscription.cancelled:
                    return
                yield ": keepalive\n\n"
                continue

            # Collapse a burst of changes into a single re-render.
            burst = [event, *subscription.drain()]
            deleted = next((e for e in burst if e.kind == "group.deleted"), None)
            if deleted is not None:
                yield format_sse("deleted", deleted.payload, event_id=deleted.sequence)
                return

            try:
                payload = render()
            except AppError as exc:
                # Membership can change mid-stream; report it and stop.
                yield format_sse("error", exc.to_dict()["error"], event_id=burst[-1].sequence)
                return

            yield format_sse("balances", payload, event_id=burst[-1].sequence)
            delivered += 1
    finally:
        subscription.cancel()
