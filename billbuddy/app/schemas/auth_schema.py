"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, email format, password strength.
  - services/auth_service.py: DUPLICATE_EMAIL (needs a DB lookup).

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      email        : valid email format, max 255 chars. This address is
                     the member identifier used in groups.
      password     : min 8 chars, at least one letter and one digit
      display_name : 1–100 chars, not blank
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    display_name = fields.Str(
        required=True,
        validate=validate.Length(
            min=1,
            max=100,
            error="Display name must be between 1 and 100 characters.",
        ),
    )

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")

    @validates("display_name")
    def validate_display_name(self, value: str, **kwargs) -> None:
        if not value.strip():
            raise ValidationError("This field must not be blank or contain only whitespace.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py
    (INVALID_CREDENTIALS, 401).
    """

    email = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh and POST /auth/logout"""

    refresh_token = fields.Str(required=True)
