"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - Email + password registration and login
  - JWT access token creation (HS256)
  - Refresh token lifecycle (creation, validation, revocation)
  - Password hashing (bcrypt) and verification

The user's email is the identity used inside groups, so it is stored
trimmed and lower-cased and every lookup normalises the same way.

Layer rules:
  - No imports from routes or schemas.
  - No use of flask.request, flask.g, or HTTP routing.
  - current_app.config is read ONLY for JWT secrets, token TTLs and the
    bcrypt cost factor.

Token design:
  - Access token: JWT, HS256, sub = user_id (str).
  - Refresh token: random hex string, stored as a SHA-256 hash. Revoked on
    logout. The raw value is returned to the client once.
"""

from __future__ import annotations

import hashlib
import logging
import secrets

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billbuddy.app.errors import AppError, ErrorCode
from billbuddy.app.models.refresh_token import RefreshToken
from billbuddy.app.models.user import User
from billbuddy.app.services.group_service import normalize_email
from billbuddy.app.timeutil import as_utc, isoformat, utcnow

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def _create_access_token(user_id: int) -> str:
    """
    Signed JWT with sub, iat, exp and a random jti so two tokens issued in
    the same second still differ.
    """
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    raw_token = secrets.token_hex(32)
    session.add(RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=utcnow() + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
    ))
    session.flush()
    return raw_token


def _build_token_pair(user_id: int, session: Session) -> dict:
    return {
        "access_token": _create_access_token(user_id),
        "refresh_token": _create_refresh_token(user_id, session),
    }


def _build_user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "created_at": isoformat(user.created_at),
    }


def _find_refresh_token(raw_refresh_token: str, session: Session) -> RefreshToken | None:
    return session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        email: str,
        password: str,
        display_name: str,
        session: Session,
) -> dict:
    """
    Creates a user account and issues an access + refresh token pair.

    Raises:
      AppError(DUPLICATE_EMAIL, 409) — email already registered.

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    email = normalize_email(email)

    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    user = User(
        email=email,
        display_name=display_name.strip(),
        password_hash=_hash_password(password),
    )
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        session.rollback()
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    logger.info("Registered user %s", user.id)
    return {
        "user": _build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def login_user(email: str, password: str, session: Session) -> dict:
    """
    Validates credentials and issues a new token pair.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — unknown email or wrong password.
      The same error covers both so accounts cannot be enumerated.
    """
    user = session.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()

    if user is None or not bcrypt.checkpw(
            password.encode("utf-8"),
            user.password_hash.encode("utf-8"),
    ):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )

    return {
        "user": _build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def refresh_access_token(raw_refresh_token: str, session: Session) -> dict:
    """
    Issues a new access token for a live refresh token. The refresh token
    is not rotated.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — unknown, revoked, or expired.
    """
    record = _find_refresh_token(raw_refresh_token, session)

    if record is None or record.revoked or as_utc(record.expires_at) <= utcnow():
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid, expired, or has been revoked.",
            401,
        )

    return {"access_token": _create_access_token(record.user_id)}


def logout_user(raw_refresh_token: str, session: Session) -> None:
    """
    Revokes a refresh token. Access tokens are short-lived and simply run out.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — token not found or already revoked.
    """
    record = _find_refresh_token(raw_refresh_token, session)

    if record is None or record.revoked:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            401,
        )

    record.revoked = True
    session.flush()
    logger.info("Revoked refresh token %s for user %s", record.id, record.user_id)


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Raises:
      AppError(USER_NOT_FOUND, 404) — the user behind a valid token is gone.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return _build_user_dict(user)
