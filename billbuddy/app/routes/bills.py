"""
routes/bills.py — Personal bill route handlers.

Every endpoint is scoped to the caller; another user's bill is a 404.
Writes publish on the owner's user topic after commit.

Endpoints (url_prefix=/api/v1/bills):
  POST   /bills               → 201  create a bill
  GET    /bills               → 200  list, soonest due first (?status=pending|paid|overdue)
  GET    /bills/reminders     → 200  upcoming reminders (?days=N)
  GET    /bills/:id           → 200  one bill
  PATCH  /bills/:id           → 200  partial update
  DELETE /bills/:id           → 200  delete
  POST   /bills/:id/status    → 200  mark paid / pending
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billbuddy.app.extensions import db, feed
from billbuddy.app.middleware.auth_middleware import require_auth
from billbuddy.app.realtime import user_topic
from billbuddy.app.schemas.bill_schema import (
    BillQuerySchema,
    BillStatusSchema,
    CreateBillSchema,
    RemindersQuerySchema,
    UpdateBillSchema,
)
from billbuddy.app.services import bill_service
from billbuddy.app.timeutil import utcnow

bills_bp = Blueprint("bills", __name__)


def _publish(kind: str, bill_id: int) -> None:
    feed.publish(user_topic(g.user_id), kind, {"bill_id": bill_id})


@bills_bp.route("/", methods=["POST"])
@require_auth
def create_bill():
    """POST /bills"""
    data = CreateBillSchema().load(request.get_json(force=True, silent=True) or {})
    bill = bill_service.create_bill(
        owner_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    _publish("bill.created", bill.id)
    return jsonify({"data": bill_service.serialize_bill(bill), "warnings": []}), 201


@bills_bp.route("/", methods=["GET"])
@require_auth
def list_bills():
    """GET /bills"""
    query = BillQuerySchema().load(request.args)
    now = utcnow()
    bills = bill_service.list_bills(
        owner_id=g.user_id,
        session=db.session,
        status=query["status"],
        now=now,
    )
    return jsonify({
        "data": [bill_service.serialize_bill(b, now) for b in bills],
        "warnings": [],
    }), 200


@bills_bp.route("/reminders", methods=["GET"])
@require_auth
def list_reminders():
    """GET /bills/reminders — Read side for an external notification scheduler."""
    query = RemindersQuerySchema().load(request.args)
    now = utcnow()
    bills = bill_service.list_upcoming_reminders(
        owner_id=g.user_id,
        session=db.session,
        now=now,
        days=query["days"],
    )
    return jsonify({
        "data": [bill_service.serialize_bill(b, now) for b in bills],
        "warnings": [],
    }), 200


@bills_bp.route("/<int:bill_id>", methods=["GET"])
@require_auth
def get_bill(bill_id: int):
    """GET /bills/:id"""
    bill = bill_service.get_bill(
        bill_id=bill_id,
        owner_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": bill_service.serialize_bill(bill), "warnings": []}), 200


@bills_bp.route("/<int:bill_id>", methods=["PATCH"])
@require_auth
def update_bill(bill_id: int):
    """PATCH /bills/:id"""
    data = UpdateBillSchema().load(request.get_json(force=True, silent=True) or {})
    bill = bill_service.update_bill(
        bill_id=bill_id,
        owner_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    _publish("bill.updated", bill_id)
    return jsonify({"data": bill_service.serialize_bill(bill), "warnings": []}), 200


@bills_bp.route("/<int:bill_id>", methods=["DELETE"])
@require_auth
def delete_bill(bill_id: int):
    """DELETE /bills/:id"""
    bill_service.delete_bill(
        bill_id=bill_id,
        owner_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    _publish("bill.deleted", bill_id)
    return jsonify({"data": {"deleted": True, "bill_id": bill_id}, "warnings": []}), 200


@bills_bp.route("/<int:bill_id>/status", methods=["POST"])
@require_auth
def set_bill_status(bill_id: int):
    """POST /bills/:id/status — body {"status": "paid" | "pending"}"""
    data = BillStatusSchema().load(request.get_json(force=True, silent=True) or {})
    bill = bill_service.set_bill_status(
        bill_id=bill_id,
        owner_id=g.user_id,
        status=data["status"],
        session=db.session,
    )
    db.session.commit()
    _publish("bill.updated", bill_id)
    return jsonify({"data": bill_service.serialize_bill(bill), "warnings": []}), 200
