"""
routes/analytics.py — Spending analytics.

Endpoints (url_prefix=/api/v1/analytics):
  GET /analytics/bills?range=month|quarter|year  → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billbuddy.app.extensions import db
from billbuddy.app.middleware.auth_middleware import require_auth
from billbuddy.app.schemas.bill_schema import AnalyticsQuerySchema
from billbuddy.app.services import analytics_service

analytics_bp = Blueprint("analytics", __name__)


@analytics_bp.route("/bills", methods=["GET"])
@require_auth
def bill_analytics():
    """GET /analytics/bills"""
    query = AnalyticsQuerySchema().load(request.args)
    result = analytics_service.get_bill_analytics(
        owner_id=g.user_id,
        session=db.session,
        time_range=query["range"],
    )
    return jsonify({"data": result, "warnings": []}), 200
