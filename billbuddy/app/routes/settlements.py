"""
routes/settlements.py — Settlement route handlers.

record_settlement returns (Expense, warnings[]). A non-empty warnings list
(e.g. OVERPAYMENT) goes into the envelope; the status is still 201.
The SETTLEMENT_POLICY from app config decides what counts as still owed.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups/:id/settlements  → 201  record a transfer between members
  GET    /groups/:id/settlements  → 200  list settlement records
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from billbuddy.app.extensions import db, feed
from billbuddy.app.middleware.auth_middleware import require_auth
from billbuddy.app.realtime import group_topic
from billbuddy.app.schemas.settlement_schema import CreateSettlementSchema
from billbuddy.app.services import settlement_service
from billbuddy.app.services.expense_service import serialize_expense

settlements_bp = Blueprint("settlements", __name__)


def _serialize_settlement(expense) -> dict:
    payload = serialize_expense(expense)
    payload["from_member"] = expense.paid_by
    payload["to_member"] = next(
        (m for m in expense.split_between if m != expense.paid_by),
        None,
    )
    return payload


@settlements_bp.route("/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    """
    POST /groups/:id/settlements

    from_member defaults to the caller. Overpayment is recorded with a
    warning rather than rejected.
    """
    data = CreateSettlementSchema().load(request.get_json(force=True, silent=True) or {})
    expense, warnings = settlement_service.record_settlement(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
        settlement_policy=current_app.config["SETTLEMENT_POLICY"],
    )
    db.session.commit()
    feed.publish(
        group_topic(group_id),
        "settlement.created",
        {"group_id": group_id, "expense_id": expense.id},
    )
    return jsonify({"data": _serialize_settlement(expense), "warnings": warnings}), 201


@settlements_bp.route("/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    """GET /groups/:id/settlements"""
    settlements = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200
