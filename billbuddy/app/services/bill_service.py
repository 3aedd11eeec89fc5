"""
services/bill_service.py — Personal bill tracking.

Bills belong to exactly one user. Another user's bill is reported as
BILL_NOT_FOUND (404) rather than FORBIDDEN so ids cannot be probed.

Status:
  The stored status is what the owner set (pending or paid). The status
  returned to clients is derive_bill_status(stored, due_timestamp, now):
  paid stays paid; otherwise a bill is overdue strictly after its due
  timestamp, and pending up to and including it.

Due timestamp:
  due_date combined with the reminder time of day (09:00 when omitted),
  in UTC. It drives ordering, overdue derivation and reminders.

Layer rules:
  - No Flask imports.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from billbuddy.app.errors import AppError, ErrorCode, InvalidInput
from billbuddy.app.models.bill import Bill, BillCategory, BillStatus
from billbuddy.app.timeutil import as_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_TIME = time(9, 0)

# Fields a PATCH may carry besides the date/time pair and status.
_PLAIN_FIELDS = ("name", "amount", "category", "notes", "is_recurring", "reminder_enabled")


# ── Status derivation (pure) ───────────────────────────────────────────────

def _coerce_timestamp(value: Any, field: str) -> datetime:
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInput(f"{field} is not an ISO-8601 timestamp: {value!r}.", field=field)
    if not isinstance(value, datetime):
        raise InvalidInput(f"{field} must be a timestamp, got {type(value).__name__}.", field=field)
    return as_utc(value)


def _coerce_status(value: Any) -> BillStatus:
    try:
        return BillStatus(value)
    except ValueError:
        raise InvalidInput(
            f"Unknown bill status {value!r}.",
            code=ErrorCode.INVALID_STATUS,
            field="status",
        )


def derive_bill_status(stored_status: Any, due_at: Any, now: Any) -> BillStatus:
    """
    Effective status of a bill at `now`.

    Accepts datetimes or ISO-8601 strings; naive values are read as UTC.
    Raises InvalidInput for an unparseable timestamp or an unknown status.
    """
    status = _coerce_status(stored_status)
    due = _coerce_timestamp(due_at, "due_at")
    current = _coerce_timestamp(now, "now")

    if status is BillStatus.PAID:
        return BillStatus.PAID
    if due < current:
        return BillStatus.OVERDUE
    return BillStatus.PENDING


# ── Helpers ────────────────────────────────────────────────────────────────

def combine_due(due_date: date, reminder_time: time | None = None) -> datetime:
    return datetime.combine(due_date, reminder_time or DEFAULT_REMINDER_TIME, tzinfo=timezone.utc)


def effective_status(bill: Bill, now: datetime | None = None) -> BillStatus:
    return derive_bill_status(bill.status, bill.due_timestamp, now or utcnow())


def serialize_bill(bill: Bill, now: datetime | None = None) -> dict:
    due = as_utc(bill.due_timestamp)
    return {
        "id": bill.id,
        "name": bill.name,
        "amount": bill.amount,
        "category": BillCategory(bill.category).value,
        "due_date": bill.due_date.isoformat(),
        "reminder_time": due.strftime("%H:%M"),
        "due_timestamp": isoformat(due),
        "notes": bill.notes,
        "is_recurring": bill.is_recurring,
        "reminder_enabled": bill.reminder_enabled,
        "status": effective_status(bill, now).value,
        "stored_status": BillStatus(bill.status).value,
        "paid_at": isoformat(bill.paid_at),
        "created_at": isoformat(bill.created_at),
        "updated_at": isoformat(bill.updated_at),
    }


def _get_owned_bill_or_404(bill_id: int, owner_id: int, session: Session) -> Bill:
    bill = session.get(Bill, bill_id)
    if bill is None or bill.user_id != owner_id:
        raise AppError(
            ErrorCode.BILL_NOT_FOUND,
            f"Bill {bill_id} does not exist.",
            404,
        )
    return bill


def _apply_status(bill: Bill, status: BillStatus, now: datetime) -> None:
    if status is BillStatus.OVERDUE:
        raise InvalidInput(
            "'overdue' is derived from the due date and cannot be set.",
            code=ErrorCode.INVALID_STATUS,
            field="status",
        )
    if status is BillStatus.PAID:
        if bill.status != BillStatus.PAID:
            bill.paid_at = now
    else:
        bill.paid_at = None
    bill.status = status


# ── Public service functions ───────────────────────────────────────────────

def create_bill(owner_id: int, data: dict, session: Session) -> Bill:
    """
    Creates a pending bill for `owner_id`.

    Args:
        data: Validated dict from CreateBillSchema.
    """
    bill = Bill(
        user_id=owner_id,
        name=data["name"].strip(),
        amount=data["amount"],
        category=data.get("category", BillCategory.OTHER),
        due_date=data["due_date"],
        due_timestamp=combine_due(data["due_date"], data.get("reminder_time")),
        notes=data.get("notes"),
        is_recurring=data.get("is_recurring", False),
        reminder_enabled=data.get("reminder_enabled", True),
        status=BillStatus.PENDING,
    )
    session.add(bill)
    session.flush()

    logger.info("Bill %s created for user %s due %s", bill.id, owner_id, bill.due_timestamp)
    return bill


def list_bills(
        owner_id: int,
        session: Session,
        status: Any = None,
        now: datetime | None = None,
) -> list[Bill]:
    """
    The owner's bills, soonest due first.

    `status` filters on the effective status, so "overdue" selects pending
    bills whose due timestamp has passed.
    """
    wanted = _coerce_status(status) if status is not None else None
    current = now or utcnow()

    stmt = (
        select(Bill)
        .where(Bill.user_id == owner_id)
        .order_by(Bill.due_timestamp.asc(), Bill.id.asc())
    )
    bills = list(session.execute(stmt).scalars().all())
    if wanted is None:
        return bills
    return [b for b in bills if effective_status(b, current) is wanted]


def get_bill(bill_id: int, owner_id: int, session: Session) -> Bill:
    return _get_owned_bill_or_404(bill_id, owner_id, session)


def update_bill(
        bill_id: int,
        owner_id: int,
        data: dict,
        session: Session,
        now: datetime | None = None,
) -> Bill:
    """
    Partially updates a bill.

    Changing due_date or reminder_time recomputes due_timestamp from the new
    value and the one already stored. A `status` key goes through the same
    rules as set_bill_status(). updated_at is stamped on every call.
    """
    bill = _get_owned_bill_or_404(bill_id, owner_id, session)
    current = now or utcnow()

    for field in _PLAIN_FIELDS:
        if field in data:
            value = data[field]
            setattr(bill, field, value.strip() if field == "name" else value)

    if "due_date" in data or "reminder_time" in data:
        due_date = data.get("due_date") or bill.due_date
        reminder_time = data.get("reminder_time") or as_utc(bill.due_timestamp).time()
        bill.due_date = due_date
        bill.due_timestamp = combine_due(due_date, reminder_time)

    if "status" in data:
        _apply_status(bill, _coerce_status(data["status"]), current)

    bill.updated_at = current
    session.flush()

    logger.info("Bill %s updated", bill_id)
    return bill


def set_bill_status(
        bill_id: int,
        owner_id: int,
        status: Any,
        session: Session,
        now: datetime | None = None,
) -> Bill:
    """Marks a bill paid (stamping paid_at) or pending (clearing it)."""
    bill = _get_owned_bill_or_404(bill_id, owner_id, session)
    current = now or utcnow()

    _apply_status(bill, _coerce_status(status), current)
    bill.updated_at = current
    session.flush()

    logger.info("Bill %s marked %s", bill_id, BillStatus(bill.status).value)
    return bill


def delete_bill(bill_id: int, owner_id: int, session: Session) -> None:
    bill = _get_owned_bill_or_404(bill_id, owner_id, session)
    session.delete(bill)
    session.flush()
    logger.info("Bill %s deleted", bill_id)


def list_upcoming_reminders(
        owner_id: int,
        session: Session,
        now: datetime | None = None,
        days: int | None = None,
) -> list[Bill]:
    """
    Pending bills with reminders on and a due timestamp not yet passed,
    soonest first. `days` limits the window to that many days from `now`.

    This is the read side for an external notification scheduler.
    """
    current = now or utcnow()
    horizon = current + timedelta(days=days) if days is not None else None

    upcoming = []
    for bill in list_bills(owner_id, session, now=current):
        if not bill.reminder_enabled:
            continue
        if effective_status(bill, current) is not BillStatus.PENDING:
            continue
        if horizon is not None and as_utc(bill.due_timestamp) > horizon:
            continue
        upcoming.append(bill)
    return upcoming
