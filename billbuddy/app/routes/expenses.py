"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1/groups: every expense path is scoped to
its group. Expenses are immutable, so there is no PATCH or DELETE.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - Publish "expense.created" on the group topic after commit.

Endpoints:
  POST   /groups/:id/expenses   → 201  record an expense
  GET    /groups/:id/expenses   → 200  list expenses, newest first
                                       ?include_settlements=false hides settlements
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billbuddy.app.extensions import db, feed
from billbuddy.app.middleware.auth_middleware import require_auth
from billbuddy.app.realtime import group_topic
from billbuddy.app.schemas.expense_schema import CreateExpenseSchema
from billbuddy.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)

_FALSE_VALUES = {"0", "false", "no", "off"}


@expenses_bp.route("/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    """POST /groups/:id/expenses"""
    data = CreateExpenseSchema().load(request.get_json(force=True, silent=True) or {})
    expense = expense_service.create_expense(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    feed.publish(
        group_topic(group_id),
        "expense.created",
        {"group_id": group_id, "expense_id": expense.id},
    )
    return jsonify({"data": expense_service.serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    """GET /groups/:id/expenses"""
    include_settlements = (
        request.args.get("include_settlements", "true").strip().lower() not in _FALSE_VALUES
    )
    expenses = expense_service.list_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        include_settlements=include_settlements,
    )
    return jsonify({
        "data": [expense_service.serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200
