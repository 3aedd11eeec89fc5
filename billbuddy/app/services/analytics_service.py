"""
services/analytics_service.py — Spending analytics over a user's bills.

compute_bill_analytics() is pure: it takes Bill rows (or anything with the
same attributes) and a reference `now`, and returns plain values.

Reference date of a bill: paid_at, else due_timestamp, else created_at.

Time ranges are calendar periods containing `now`:
  month    same month and year
  quarter  same calendar quarter and year
  year     same year
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy.orm import Session

from billbuddy.app.errors import ErrorCode, InvalidInput
from billbuddy.app.models.bill import BillCategory, BillStatus
from billbuddy.app.services.bill_service import effective_status, list_bills
from billbuddy.app.timeutil import as_utc, utcnow

TIME_RANGES = ("month", "quarter", "year")
TREND_MONTHS = 6
TOP_CATEGORY_LIMIT = 5

_CENT = Decimal("0.01")
_ZERO = Decimal("0.00")
_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def reference_date(bill: Any) -> datetime:
    return as_utc(bill.paid_at or bill.due_timestamp or bill.created_at)


def _in_range(moment: datetime, time_range: str, now: datetime) -> bool:
    if moment.year != now.year:
        return False
    if time_range == "year":
        return True
    if time_range == "quarter":
        return (moment.month - 1) // 3 == (now.month - 1) // 3
    return moment.month == now.month


def _months_back(now: datetime, count: int) -> list[tuple[int, int]]:
    """(year, month) pairs for the last `count` months, oldest first."""
    pairs = []
    year, month = now.year, now.month
    for _ in range(count):
        pairs.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(pairs))


def _is_paid(bill: Any) -> bool:
    return BillStatus(bill.status) is BillStatus.PAID


def compute_bill_analytics(
        bills: Iterable[Any],
        time_range: str = "month",
        now: datetime | None = None,
) -> dict:
    """
    Aggregates spending for the period and a six-month paid trend.

    Raises InvalidInput(INVALID_TIME_RANGE) for an unknown time range.
    """
    if time_range not in TIME_RANGES:
        raise InvalidInput(
            f"time range must be one of {', '.join(TIME_RANGES)}; got {time_range!r}.",
            code=ErrorCode.INVALID_TIME_RANGE,
            field="range",
        )
    current = as_utc(now) if now is not None else utcnow()
    bills = list(bills)

    in_range = [b for b in bills if _in_range(reference_date(b), time_range, current)]
    paid = [b for b in in_range if _is_paid(b)]
    statuses = [effective_status(b, current) for b in in_range]

    category_spending: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for bill in paid:
        category_spending[BillCategory(bill.category).value] += Decimal(bill.amount)

    total_spent = sum((Decimal(b.amount) for b in paid), _ZERO)
    average_bill = (
        (total_spent / len(in_range)).quantize(_CENT, rounding=ROUND_HALF_UP)
        if in_range else _ZERO
    )

    ranked = sorted(category_spending.items(), key=lambda item: (-item[1], item[0]))
    top_categories = [
        {
            "category": category,
            "amount": amount,
            "percentage": (
                float((amount / total_spent * 100).quantize(_CENT, rounding=ROUND_HALF_UP))
                if total_spent > 0 else 0.0
            ),
        }
        for category, amount in ranked[:TOP_CATEGORY_LIMIT]
    ]

    monthly_totals: dict[tuple[int, int], Decimal] = defaultdict(lambda: _ZERO)
    for bill in bills:
        if _is_paid(bill):
            moment = reference_date(bill)
            monthly_totals[(moment.year, moment.month)] += Decimal(bill.amount)

    monthly_trend = [
        {
            "year": year,
            "month": _MONTH_ABBR[month - 1],
            "month_number": month,
            "amount": monthly_totals[(year, month)],
        }
        for year, month in _months_back(current, TREND_MONTHS)
    ]

    return {
        "time_range": time_range,
        "total_spent": total_spent,
        "average_bill": average_bill,
        "bill_count": len(in_range),
        "paid_bills": len(paid),
        "pending_bills": sum(1 for s in statuses if s is BillStatus.PENDING),
        "overdue_bills": sum(1 for s in statuses if s is BillStatus.OVERDUE),
        "recurring_bills": sum(1 for b in in_range if b.is_recurring),
        "category_spending": dict(category_spending),
        "top_categories": top_categories,
        "monthly_trend": monthly_trend,
    }


def get_bill_analytics(
        owner_id: int,
        session: Session,
        time_range: str = "month",
        now: datetime | None = None,
) -> dict:
    """Analytics over every bill the user owns."""
    return compute_bill_analytics(list_bills(owner_id, session, now=now), time_range, now)
