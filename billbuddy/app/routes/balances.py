"""
routes/balances.py — Balance route handlers.

The settlement policy ("net" or "ignore") comes from app config and is
handed to the service explicitly.

Endpoints (url_prefix=/api/v1/groups):
  GET /groups/:id/balances          → 200  balances + suggested settlements
  GET /groups/:id/balances/stream   → 200  text/event-stream; the same view
                                            re-sent after every group change
"""

from __future__ import annotations

from flask import Blueprint, Response, current_app, g, jsonify, request, stream_with_context

from billbuddy.app.extensions import db, feed
from billbuddy.app.middleware.auth_middleware import require_auth
from billbuddy.app.realtime import group_topic
from billbuddy.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    """GET /groups/:id/balances — Caller must be a member."""
    result = balance_service.get_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        settlement_policy=current_app.config["SETTLEMENT_POLICY"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/balances/stream", methods=["GET"])
@require_auth(allow_query_token=True)
def stream_balances(group_id: int):
    """
    GET /groups/:id/balances/stream

    Optional ?max_events=N closes the stream after N re-renders.

    Access is checked before the stream opens, so 403/404 come back as the
    usual JSON error. Later failures arrive as an "error" event.
    """
    caller_id = g.user_id
    policy = current_app.config["SETTLEMENT_POLICY"]
    keepalive = current_app.config["STREAM_KEEPALIVE_SECONDS"]
    max_events = request.args.get("max_events", type=int)

    balance_service.get_balance_response(group_id, caller_id, db.session, policy)

    def render() -> dict:
        # Drop cached rows so commits from other requests are visible.
        db.session.expire_all()
        return balance_service.get_balance_response(group_id, caller_id, db.session, policy)

    subscription = feed.subscribe(group_topic(group_id))
    stream = balance_service.balance_event_stream(
        subscription,
        render,
        keepalive_seconds=keepalive,
        max_events=max_events,
    )
    current_app.logger.debug("Balance stream opened for group %s by user %s", group_id, caller_id)
    response = Response(
        stream_with_context(stream),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    # stream_with_context does not close an unstarted inner iterator.
    response.call_on_close(stream.close)
    return response
