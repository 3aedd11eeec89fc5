"""
routes/groups.py — Group route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - Publish a change event on the group topic after every commit.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups        → 201  create group (caller becomes first member)
  GET    /groups        → 200  list the caller's groups, newest first
  GET    /groups/:id    → 200  group details and member list
  PATCH  /groups/:id    → 200  rename and/or replace members
  DELETE /groups/:id    → 200  delete group and its expenses
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billbuddy.app.extensions import db, feed
from billbuddy.app.middleware.auth_middleware import require_auth
from billbuddy.app.realtime import group_topic
from billbuddy.app.schemas.group_schema import CreateGroupSchema, UpdateGroupSchema
from billbuddy.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a group."""
    data = CreateGroupSchema().load(request.get_json(force=True, silent=True) or {})
    result = group_service.create_group(
        name=data["name"],
        creator_id=g.user_id,
        members=data["members"],
        session=db.session,
    )
    db.session.commit()
    feed.publish(group_topic(result["id"]), "group.created", {"group_id": result["id"]})
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — Groups whose member list contains the caller."""
    result = group_service.list_groups(
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Caller must be a member."""
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    """PATCH /groups/:id — Any member may edit."""
    data = UpdateGroupSchema().load(request.get_json(force=True, silent=True) or {})
    result = group_service.update_group(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    feed.publish(group_topic(group_id), "group.updated", {"group_id": group_id})
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Any member may delete; expenses go with it."""
    group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    feed.publish(group_topic(group_id), "group.deleted", {"group_id": group_id})
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200
