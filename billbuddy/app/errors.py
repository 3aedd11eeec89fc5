"""
errors.py — AppError base class, the ledger error taxonomy and the error
code registry.

Every error returned by the BillBuddy API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add a test that triggers it.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Routing Errors ─────────────────────────────────────────────────────
    ROUTE_NOT_FOUND            = "ROUTE_NOT_FOUND"         # 404
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"      # 405

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CATEGORY           = "INVALID_CATEGORY"
    INVALID_STATUS             = "INVALID_STATUS"
    INVALID_TIME_RANGE         = "INVALID_TIME_RANGE"
    INVALID_INPUT              = "INVALID_INPUT"           # malformed timestamp / enum

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    BILL_NOT_FOUND             = "BILL_NOT_FOUND"

    # ── Ledger Rule Violations (422) ───────────────────────────────────────
    INVALID_GROUP              = "INVALID_GROUP"           # empty membership
    INVALID_EXPENSE            = "INVALID_EXPENSE"         # amount <= 0
    EMPTY_SPLIT                = "EMPTY_SPLIT"             # split set is empty
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_MEMBER_NOT_IN_GROUP  = "SPLIT_MEMBER_NOT_IN_GROUP"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    MEMBER_IN_USE              = "MEMBER_IN_USE"           # removed member still in expenses

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Settlement amount exceeds what the payer currently owes the recipient.
    # Still recorded.
    OVERPAYMENT = "OVERPAYMENT"


# ── Ledger error taxonomy ──────────────────────────────────────────────────
#
# Local validation failures on malformed input. None are retried and none
# are fatal to the process: the caller surfaces the message and skips the
# affected record. The pure functions in services/ raise these directly, so
# they carry an HTTP status like every other AppError.
# ──────────────────────────────────────────────────────────────────────────

class InvalidGroup(AppError):
    """Group membership is empty."""

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.INVALID_GROUP,
            field: str | None = None,
    ) -> None:
        super().__init__(code, message, 422, field=field)


class InvalidExpense(AppError):
    """Non-positive amount, empty split set, or payer/participant outside the group."""

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.INVALID_EXPENSE,
            field: str | None = None,
    ) -> None:
        super().__init__(code, message, 422, field=field)


class InvalidInput(AppError):
    """Malformed timestamp or enum value handed to a pure derivation."""

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.INVALID_INPUT,
            field: str | None = None,
    ) -> None:
        super().__init__(code, message, 400, field=field)
