"""
tests/unit/test_debt_simplification.py — Unit tests for balance_service.simplify_debts.

What this file proves:
  - Two-person debt → single transfer
  - One creditor, many debtors → one transfer per debtor
  - Any group settles with at most N-1 transfers
  - Transfers always run debtor → creditor, never to oneself
  - Simplification is economically correct: the transfers reproduce the
    original net positions exactly
  - Ties are broken by member identifier, so output is deterministic
  - Amounts are Decimal, never float

Unit test constraints:
  - No database, no Flask, no auth context.
  - simplify_debts takes a plain dict[str, Decimal]; no mocking required.

Pre-condition: sum(balances.values()) == 0. Rounded balances from
compute_balances can miss zero by a cent; that case is covered at the end.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from types import SimpleNamespace

from billbuddy.app.services.balance_service import compute_balances, simplify_debts


# ── Helpers ────────────────────────────────────────────────────────────────

def _verify_correctness(
    original_balances: dict[str, Decimal],
    transfers: list[dict],
) -> None:
    """
    Replays the transfers and asserts they reproduce the original positions.

    simplify_debts must not invent money, lose money, or misroute payments.
    """
    net = defaultdict(lambda: Decimal("0.00"))
    for txn in transfers:
        net[txn["from_member"]] -= txn["amount"]
        net[txn["to_member"]]   += txn["amount"]

    for member, expected in original_balances.items():
        assert net[member] == expected, (
            f"Simplification incorrect for {member}: "
            f"expected net change {expected}, got {net[member]}"
        )


def _d(**balances: str) -> dict[str, Decimal]:
    return {member: Decimal(amount) for member, amount in balances.items()}


# ── Tests ──────────────────────────────────────────────────────────────────

def test_all_zero_returns_empty_list():
    assert simplify_debts(_d(a="0.00", b="0.00", c="0.00")) == []


def test_empty_dict_returns_empty_list():
    assert simplify_debts({}) == []


def test_two_person_debt_one_transfer():
    """alice is owed 50, bob owes 50: one transfer, bob → alice."""
    result = simplify_debts(_d(alice="50.00", bob="-50.00"))

    assert result == [{"from_member": "bob", "to_member": "alice", "amount": Decimal("50.00")}]


def test_one_creditor_two_debtors():
    balances = _d(alice="100.00", bob="-40.00", carol="-60.00")

    result = simplify_debts(balances)

    assert len(result) == 2
    assert {txn["to_member"] for txn in result} == {"alice"}
    # Largest debtor is matched first.
    assert result[0]["from_member"] == "carol"
    _verify_correctness(balances, result)


def test_two_creditors_two_debtors():
    balances = _d(alice="80.00", bob="-50.00", carol="-50.00", dave="20.00")

    result = simplify_debts(balances)

    assert len(result) <= 3
    _verify_correctness(balances, result)


def test_five_member_group_at_most_n_minus_1():
    balances = _d(a="100.00", b="50.00", c="-40.00", d="-60.00", e="-50.00")

    result = simplify_debts(balances)

    assert len(result) <= 4
    _verify_correctness(balances, result)


def test_ties_broken_by_member_identifier():
    balances = _d(bob="30.00", alice="30.00", carol="-60.00")

    result = simplify_debts(balances)

    assert result == [
        {"from_member": "carol", "to_member": "alice", "amount": Decimal("30.00")},
        {"from_member": "carol", "to_member": "bob", "amount": Decimal("30.00")},
    ]


def test_output_independent_of_dict_order():
    forward = _d(a="25.00", b="-10.00", c="-15.00", d="0.00")
    backward = dict(reversed(list(forward.items())))

    assert simplify_debts(forward) == simplify_debts(backward)


def test_single_cent_debt():
    result = simplify_debts(_d(a="0.01", b="-0.01"))

    assert len(result) == 1
    assert result[0]["amount"] == Decimal("0.01")


def test_large_amounts():
    result = simplify_debts(_d(a="999999.99", b="-999999.99"))

    assert result[0]["amount"] == Decimal("999999.99")


def test_all_positive_no_debtors():
    # Unbalanced input must not crash: no debtors means no transfers.
    assert simplify_debts(_d(a="50.00", b="50.00")) == []


def test_all_negative_no_creditors():
    assert simplify_debts(_d(a="-50.00", b="-50.00")) == []


def test_amounts_are_positive_decimals():
    result = simplify_debts(_d(a="100.00", b="-60.00", c="-40.00"))

    for txn in result:
        assert isinstance(txn["amount"], Decimal)
        assert txn["amount"] > Decimal("0.00")


def test_no_self_transfers_generated():
    result = simplify_debts(_d(a="50.00", b="-30.00", c="-20.00"))

    for txn in result:
        assert txn["from_member"] != txn["to_member"]


def test_result_structure_has_required_keys():
    result = simplify_debts(_d(a="40.00", b="-40.00"))

    assert set(result[0]) == {"from_member", "to_member", "amount"}


def test_rounded_group_balances_leave_at_most_a_cent_unmatched():
    # 100 three ways: 66.67 / -33.33 / -33.33 sums to +0.01.
    members = ["a", "b", "c"]
    expense = SimpleNamespace(paid_by="a", amount="100", split_between=members, settlement=False)
    balances = compute_balances(members, [expense])

    result = simplify_debts(balances)

    assert len(result) == 2
    assert sum(txn["amount"] for txn in result) == Decimal("66.66")
    assert all(txn["to_member"] == "a" for txn in result)
