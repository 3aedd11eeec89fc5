"""
schemas/common.py — Validators shared by the request schemas.

Monetary amounts: strictly positive, at most 2 decimal places. Input with
more precision is REJECTED with INVALID_AMOUNT_PRECISION, never rounded;
the columns are NUMERIC(12, 2).

Strings: validate.Length(min=1) lets "   " through, so blank-after-trim is
checked separately. This mirrors the CHECK(LENGTH(TRIM(...)) > 0)
constraints on the tables.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import ValidationError

from billbuddy.app.errors import ErrorCode

MAX_AMOUNT = Decimal("9999999999.99")


def validate_monetary_amount(value: Decimal) -> None:
    if not value.is_finite() or value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # as_tuple().exponent is the negated scale:
    #   Decimal("10.123") -> -3 -> reject
    #   Decimal("10.12")  -> -2 -> accept
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)

    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}.")


def validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")
