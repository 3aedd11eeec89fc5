"""
schemas/group_schema.py — Marshmallow schemas for group endpoints.

Validation responsibility:
  - This file: field types, name length, member email format.
  - services/group_service.py:
      - caller membership (FORBIDDEN, 403) and GROUP_NOT_FOUND (404)
      - creator-first ordering and de-duplication of members
      - MEMBER_IN_USE (422) when an edit drops someone still on an expense

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from billbuddy.app.schemas.common import validate_non_empty_after_trim

_NAME = dict(
    validate=[
        validate.Length(
            min=1,
            max=100,
            error="Group name must be between 1 and 100 characters.",
        ),
        validate_non_empty_after_trim,
    ],
)

_MEMBERS_MAX = 50


class CreateGroupSchema(Schema):
    """
    POST /groups

    `members` lists the other participants' emails. The creator is added
    by the service and need not be listed. People who have not registered
    yet may be included.
    """

    name = fields.Str(required=True, **_NAME)

    members = fields.List(
        fields.Email(validate=validate.Length(max=255)),
        load_default=list,
        validate=validate.Length(max=_MEMBERS_MAX, error=f"A group may list at most {_MEMBERS_MAX} members."),
    )


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    Both fields optional; at least one required. `members` replaces the
    whole list (the creator is kept first regardless).
    """

    name = fields.Str(required=False, **_NAME)

    members = fields.List(
        fields.Email(validate=validate.Length(max=255)),
        required=False,
        validate=validate.Length(max=_MEMBERS_MAX, error=f"A group may list at most {_MEMBERS_MAX} members."),
    )

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one of: name, members.")
