"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)            — from_member defaults to the caller,
                                           which only the route knows
      - OVERPAYMENT warning (201)        — needs the current balances
      - PAYER_NOT_MEMBER / SPLIT_MEMBER_NOT_IN_GROUP (422) — member list

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from billbuddy.app.schemas.common import validate_monetary_amount


class CreateSettlementSchema(Schema):
    """
    POST /groups/:id/settlements

    Records money handed from `from_member` (default: the caller) to
    `to_member`. Overpayment is allowed; the service adds a warning.
    """

    to_member = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    from_member = fields.Email(
        load_default=None,
        validate=validate.Length(max=255),
    )

    amount = fields.Decimal(
        required=True,
        validate=validate_monetary_amount,
    )
