"""
tests/integration/test_settlements.py — Integration tests for settlement endpoints.

Endpoints covered:
  POST /groups/:id/settlements → 201
  GET  /groups/:id/settlements → 200

Rules verified:
  - A settlement is stored as an expense with settlement=True,
    paid_by=from_member and split_between=[from_member, to_member]
  - from_member defaults to the caller
  - SELF_SETTLEMENT / PAYER_NOT_MEMBER / SPLIT_MEMBER_NOT_IN_GROUP (422)
  - Paying more than is owed is recorded with an OVERPAYMENT warning
"""

from __future__ import annotations

from .conftest import (
    auth_headers,
    balances_by_member,
    make_expense,
    make_group,
    make_settlement,
    register,
)


def _setup(client):
    alice = register(client, "alice")
    bob = register(client, "bob")
    group = make_group(client, alice["access_token"], "Flat", ["bob@test.com"])
    # Alice pays 100 split evenly: Bob owes Alice 50.
    make_expense(client, alice["access_token"], group["id"], "100.00")
    return alice, bob, group


class TestRecordSettlement:

    def test_settlement_is_stored_as_flagged_expense(self, client):
        alice, bob, group = _setup(client)

        resp = make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "50.00")
        assert resp.status_code == 201
        body = resp.get_json()
        data = body["data"]
        assert data["settlement"] is True
        assert data["paid_by"] == "bob@test.com"
        assert data["split_between"] == ["bob@test.com", "alice@test.com"]
        assert data["from_member"] == "bob@test.com"
        assert data["to_member"] == "alice@test.com"
        assert data["description"] == "Settlement: bob@test.com to alice@test.com"
        assert body["warnings"] == []

    def test_full_settlement_zeroes_balances(self, client):
        alice, bob, group = _setup(client)
        make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "50.00")

        resp = client.get(
            f"/api/v1/groups/{group['id']}/balances",
            headers=auth_headers(alice["access_token"]),
        )
        balances = balances_by_member(resp.get_json()["data"])
        assert balances == {"alice@test.com": "0.00", "bob@test.com": "0.00"}
        assert resp.get_json()["data"]["suggested_settlements"] == []

    def test_explicit_from_member_recorded_by_third_party(self, client):
        alice, bob, group = _setup(client)

        resp = make_settlement(
            client, alice["access_token"], group["id"],
            to_member="alice@test.com", amount="20.00", from_member="bob@test.com",
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["from_member"] == "bob@test.com"
        assert data["created_by"] == "alice@test.com"

    def test_overpayment_is_recorded_with_warning(self, client):
        alice, bob, group = _setup(client)

        resp = make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "80.00")
        assert resp.status_code == 201
        warnings = resp.get_json()["warnings"]
        assert [w["code"] for w in warnings] == ["OVERPAYMENT"]

        balances = balances_by_member(client.get(
            f"/api/v1/groups/{group['id']}/balances",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"])
        assert balances == {"alice@test.com": "-30.00", "bob@test.com": "30.00"}

    def test_repeat_payment_warning_follows_settlement_policy(self, client, app, monkeypatch):
        alice, bob, group = _setup(client)
        make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "50.00")

        # Under "net" the debt is paid off; under "ignore" the view still shows 50 owed.
        netted = make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "50.00")
        assert [w["code"] for w in netted.get_json()["warnings"]] == ["OVERPAYMENT"]

        monkeypatch.setitem(app.config, "SETTLEMENT_POLICY", "ignore")
        ignored = make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "50.00")
        assert ignored.status_code == 201
        assert ignored.get_json()["warnings"] == []

    def test_paying_a_creditor_you_do_not_owe_warns(self, client):
        alice, bob, group = _setup(client)

        # Alice is owed money; any payment from her is an overpayment.
        resp = make_settlement(client, alice["access_token"], group["id"], "bob@test.com", "5.00")
        assert resp.status_code == 201
        assert resp.get_json()["warnings"][0]["code"] == "OVERPAYMENT"

    def test_self_settlement_returns_422(self, client):
        alice, bob, group = _setup(client)

        resp = make_settlement(client, alice["access_token"], group["id"], "ALICE@test.com", "5.00")
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SELF_SETTLEMENT"

    def test_recipient_outside_group_returns_422(self, client):
        alice, bob, group = _setup(client)

        resp = make_settlement(client, bob["access_token"], group["id"], "stranger@test.com", "5.00")
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SPLIT_MEMBER_NOT_IN_GROUP"

    def test_payer_outside_group_returns_422(self, client):
        alice, bob, group = _setup(client)

        resp = make_settlement(
            client, alice["access_token"], group["id"],
            to_member="bob@test.com", amount="5.00", from_member="stranger@test.com",
        )
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "PAYER_NOT_MEMBER"

    def test_missing_to_member_returns_400(self, client):
        alice, bob, group = _setup(client)

        resp = client.post(
            f"/api/v1/groups/{group['id']}/settlements",
            json={"amount": "5.00"},
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "to_member"

    def test_non_member_gets_403(self, client):
        alice, bob, group = _setup(client)
        eve = register(client, "eve")

        resp = make_settlement(client, eve["access_token"], group["id"], "alice@test.com", "5.00")
        assert resp.status_code == 403


class TestListSettlements:

    def test_lists_only_settlements_newest_first(self, client):
        alice, bob, group = _setup(client)
        first = make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "10.00")
        second = make_settlement(client, bob["access_token"], group["id"], "alice@test.com", "15.00")

        resp = client.get(
            f"/api/v1/groups/{group['id']}/settlements",
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert [s["id"] for s in data] == [
            second.get_json()["data"]["id"],
            first.get_json()["data"]["id"],
        ]
        assert all(s["settlement"] for s in data)
