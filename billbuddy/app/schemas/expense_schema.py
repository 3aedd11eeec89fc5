"""
schemas/expense_schema.py — Marshmallow schema for expense creation.

Validation responsibility:
  - This file:
      - Field types, lengths, decimal precision, positive amount
      - Non-empty-after-trim description
      - split_between, when sent, is a non-empty list of emails
  - services/expense_service.py (via balance_service.validate_expense):
      - PAYER_NOT_MEMBER (422)          — needs the group's member list
      - SPLIT_MEMBER_NOT_IN_GROUP (422) — needs the group's member list

Expenses have no PATCH schema: they are immutable once recorded.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from billbuddy.app.errors import ErrorCode
from billbuddy.app.schemas.common import (
    validate_monetary_amount,
    validate_non_empty_after_trim,
)


class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    Defaults applied by the service:
      paid_by        the caller
      split_between  every current group member
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=validate_monetary_amount,
    )

    paid_by = fields.Email(
        load_default=None,
        validate=validate.Length(max=255),
    )

    # An explicitly empty list is an error, not "everyone".
    split_between = fields.List(
        fields.Email(validate=validate.Length(max=255)),
        load_default=None,
        validate=validate.Length(min=1, error=ErrorCode.EMPTY_SPLIT),
    )
