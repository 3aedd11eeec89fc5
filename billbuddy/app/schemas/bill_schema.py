"""
schemas/bill_schema.py — Marshmallow schemas for bill endpoints.

Validation responsibility:
  - This file: field types, lengths, category and status enums, decimal
    precision, positive amount.
  - services/bill_service.py: ownership (BILL_NOT_FOUND, 404), due
    timestamp composition, paid_at bookkeeping.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates_schema

from billbuddy.app.errors import ErrorCode
from billbuddy.app.models.bill import BillCategory
from billbuddy.app.schemas.common import (
    validate_monetary_amount,
    validate_non_empty_after_trim,
)

# Owners may only set these; "overdue" is derived.
SETTABLE_STATUSES = ("pending", "paid")


def _name_field(required: bool) -> fields.Str:
    return fields.Str(
        required=required,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Bill name must be between 1 and 100 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )


def _category_field(**kwargs) -> fields.Enum:
    return fields.Enum(
        BillCategory,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
        **kwargs,
    )


class CreateBillSchema(Schema):
    """
    POST /bills

    reminder_time is "HH:MM"; 09:00 is used when omitted.
    """

    name = _name_field(required=True)
    amount = fields.Decimal(required=True, validate=validate_monetary_amount)
    category = _category_field(load_default=BillCategory.OTHER)
    due_date = fields.Date(required=True)
    reminder_time = fields.Time(load_default=None)
    notes = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=1000),
    )
    is_recurring = fields.Bool(load_default=False)
    reminder_enabled = fields.Bool(load_default=True)


class UpdateBillSchema(Schema):
    """PATCH /bills/:id — every field optional, at least one required."""

    name = _name_field(required=False)
    amount = fields.Decimal(validate=validate_monetary_amount)
    category = _category_field()
    due_date = fields.Date()
    reminder_time = fields.Time()
    notes = fields.Str(allow_none=True, validate=validate.Length(max=1000))
    is_recurring = fields.Bool()
    reminder_enabled = fields.Bool()
    status = fields.Str(
        validate=validate.OneOf(SETTABLE_STATUSES, error=ErrorCode.INVALID_STATUS),
    )

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one field to update.")


class BillStatusSchema(Schema):
    """POST /bills/:id/status"""

    status = fields.Str(
        required=True,
        validate=validate.OneOf(SETTABLE_STATUSES, error=ErrorCode.INVALID_STATUS),
    )


class BillQuerySchema(Schema):
    """GET /bills?status= — filters on the effective status, so overdue is allowed."""

    class Meta:
        unknown = EXCLUDE

    status = fields.Str(
        load_default=None,
        validate=validate.OneOf(("pending", "paid", "overdue"), error=ErrorCode.INVALID_STATUS),
    )


class RemindersQuerySchema(Schema):
    """GET /bills/reminders?days="""

    class Meta:
        unknown = EXCLUDE

    days = fields.Int(
        load_default=None,
        validate=validate.Range(min=0, max=366),
    )


class AnalyticsQuerySchema(Schema):
    """GET /analytics/bills?range="""

    class Meta:
        unknown = EXCLUDE

    range = fields.Str(
        load_default="month",
        validate=validate.OneOf(("month", "quarter", "year"), error=ErrorCode.INVALID_TIME_RANGE),
    )
