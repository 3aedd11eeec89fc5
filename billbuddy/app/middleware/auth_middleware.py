"""
middleware/auth_middleware.py — JWT authentication decorator.

@require_auth:
  1. Reads "Authorization: Bearer <token>". Views that serve an
     EventSource stream may opt in to an `access_token` query parameter
     instead, because browsers cannot set headers on EventSource.
  2. Verifies the HS256 signature and expiry.
  3. Sets flask.g.user_id (int) for the rest of the request.

This is authentication only (401). Group membership and bill ownership are
checked by the services (403 / 404).

Error codes:
  TOKEN_MISSING  (401) — no token supplied
  TOKEN_INVALID  (401) — malformed header, bad signature or bad payload
  TOKEN_EXPIRED  (401) — exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from billbuddy.app.errors import AppError, ErrorCode


def require_auth(f: Callable | None = None, *, allow_query_token: bool = False) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Usage:
        @groups_bp.get("/")
        @require_auth
        def list_groups():
            caller_id = g.user_id

        @balances_bp.get("/<int:group_id>/balances/stream")
        @require_auth(allow_query_token=True)
        def stream_balances(group_id): ...
    """
    def decorator(view: Callable) -> Callable:
        @functools.wraps(view)
        def decorated(*args, **kwargs):
            _authenticate_request(allow_query_token)
            return view(*args, **kwargs)

        return decorated

    if f is not None:
        return decorator(f)
    return decorator


def _extract_token(allow_query_token: bool) -> str:
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        query_token = request.args.get("access_token") if allow_query_token else None
        if query_token:
            return query_token
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return parts[1]


def _decode(raw_token: str) -> dict:
    try:
        return jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )


def _authenticate_request(allow_query_token: bool = False) -> None:
    """
    Runs the whole check and sets flask.g.user_id.

    Callable directly in tests inside a request context. Raises AppError on
    failure; the global error handler renders it.
    """
    payload = _decode(_extract_token(allow_query_token))

    sub = payload.get("sub")
    if sub is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing the required 'sub' claim.",
            401,
        )

    try:
        g.user_id = int(sub)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )
