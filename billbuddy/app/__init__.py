"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - `alembic` to load metadata without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Serialise Decimal as string (monetary amounts are never JSON numbers)
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask.logging import default_handler
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from billbuddy.config import config_by_name, validate_production_config


class DecimalJSONProvider(DefaultJSONProvider):
    """
    Flask's default JSON provider, plus Decimal → str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Unknown names fall back to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    from billbuddy.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # Populate SQLAlchemy's MetaData; the names themselves are unused here.
    with app.app_context():
        from billbuddy.app.models import (  # noqa: F401
            bill,
            expense,
            group,
            membership,
            refresh_token,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    app.logger.info(
        "BillBuddy started (config=%s, settlement_policy=%s)",
        config_name,
        app.config["SETTLEMENT_POLICY"],
    )
    return app


def _configure_logging(app: Flask) -> None:
    """
    app.logger and the `billbuddy` package loggers share Flask's default
    stderr handler and the LOG_LEVEL from config.
    """
    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)

    package_logger = logging.getLogger("billbuddy")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under /api/v1.

    Group-scoped resources (expenses, settlements, balances) share the
    /api/v1/groups prefix so their paths read /groups/<id>/<resource>.
    """
    from billbuddy.app.routes.analytics import analytics_bp
    from billbuddy.app.routes.auth import auth_bp
    from billbuddy.app.routes.balances import balances_bp
    from billbuddy.app.routes.bills import bills_bp
    from billbuddy.app.routes.expenses import expenses_bp
    from billbuddy.app.routes.groups import groups_bp
    from billbuddy.app.routes.settlements import settlements_bp

    app.register_blueprint(auth_bp,        url_prefix="/api/v1/auth")
    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/groups")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(bills_bp,       url_prefix="/api/v1/bills")
    app.register_blueprint(analytics_bp,   url_prefix="/api/v1/analytics")


def _first_error(messages, field: str | None = None) -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages to the first (field, message) pair.

    {"amount": ["INVALID_AMOUNT_PRECISION"]}          → ("amount", "INVALID_AMOUNT_PRECISION")
    {"split_between": {0: ["Not a valid email."]}}    → ("split_between", "Not a valid email.")
    """
    if isinstance(messages, dict):
        for key, nested in messages.items():
            if field is None and isinstance(key, str) and key != "_schema":
                return _first_error(nested, key)
            return _first_error(nested, field)
    elif isinstance(messages, (list, tuple)):
        if messages:
            return _first_error(messages[0], field)
    elif messages is not None:
        return field, str(messages)
    return field, "Invalid input."


def _register_error_handlers(app: Flask) -> None:
    """
    Handlers:
      AppError        → the error's own envelope and HTTP status
      ValidationError → the FIRST schema error as MISSING_FIELD / INVALID_FIELD
                        or a registered code (400)
      HTTPException   → ROUTE_NOT_FOUND / METHOD_NOT_ALLOWED / INVALID_INPUT
      Exception       → INTERNAL_ERROR (500); traceback goes to the log only
    """
    from billbuddy.app.errors import AppError, ErrorCode
    from billbuddy.app.extensions import db

    known_codes = {v for k, v in vars(ErrorCode).items() if not k.startswith("_")}

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("AppError %s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        field, raw_message = _first_error(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        status = error.code or 500
        code = {
            404: ErrorCode.ROUTE_NOT_FOUND,
            405: ErrorCode.METHOD_NOT_ALLOWED,
        }.get(status, ErrorCode.INVALID_INPUT if status < 500 else ErrorCode.INTERNAL_ERROR)
        return jsonify({"error": {"code": code, "message": error.description}}), status

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled exception on %s %s", request.method, request.path)
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers when DEBUG or TESTING is on, so a frontend served from
    another local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """Default prose for schema errors whose message is a registered code."""
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_CATEGORY": "The category value is not valid.",
        "INVALID_STATUS": "status must be 'pending' or 'paid' ('overdue' only as a filter).",
        "INVALID_TIME_RANGE": "range must be 'month', 'quarter' or 'year'.",
        "EMPTY_SPLIT": "split_between must list at least one member.",
    }
    return _messages.get(code, "Invalid input.")
