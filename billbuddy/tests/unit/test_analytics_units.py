"""
tests/unit/test_analytics_units.py — Unit tests for analytics_service.

compute_bill_analytics is pure, so every test hands it SimpleNamespace bills
and a fixed `now`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from billbuddy.app.errors import ErrorCode, InvalidInput
from billbuddy.app.services.analytics_service import (
    _months_back,
    compute_bill_analytics,
    reference_date,
)

NOW = datetime(2026, 5, 20, 12, 0, tzinfo=timezone.utc)


def _at(year, month, day=10):
    return datetime(year, month, day, 9, 0, tzinfo=timezone.utc)


def _bill(amount, category="other", status="pending", due=None, paid_at=None, recurring=False):
    return SimpleNamespace(
        amount=Decimal(amount),
        category=category,
        status=status,
        due_timestamp=due or _at(2026, 5, 25),
        paid_at=paid_at,
        created_at=_at(2026, 1, 1),
        is_recurring=recurring,
    )


def test_reference_date_prefers_paid_at():
    bill = _bill("1.00", due=_at(2026, 8), paid_at=_at(2026, 5))

    assert reference_date(bill) == _at(2026, 5)


def test_reference_date_falls_back_to_created_at():
    bill = _bill("1.00")
    bill.due_timestamp = None

    assert reference_date(bill) == _at(2026, 1, 1)


def test_months_back_crosses_year_boundary():
    assert _months_back(datetime(2026, 2, 1, tzinfo=timezone.utc), 4) == [
        (2025, 11), (2025, 12), (2026, 1), (2026, 2),
    ]


def test_month_summary():
    bills = [
        _bill("800.00", "rent", "paid", paid_at=_at(2026, 5, 1), recurring=True),
        _bill("40.00", "wifi", "paid", paid_at=_at(2026, 5, 2)),
        _bill("60.00", "electricity", due=_at(2026, 5, 2)),  # overdue at NOW
        _bill("20.00", "water", due=_at(2026, 5, 30)),       # pending
        _bill("99.00", "gas", "paid", paid_at=_at(2026, 4, 2)),
    ]

    result = compute_bill_analytics(bills, "month", NOW)

    assert result["time_range"] == "month"
    assert result["total_spent"] == Decimal("840.00")
    assert result["bill_count"] == 4
    assert result["paid_bills"] == 2
    assert result["pending_bills"] == 1
    assert result["overdue_bills"] == 1
    assert result["recurring_bills"] == 1
    assert result["average_bill"] == Decimal("210.00")
    assert result["category_spending"] == {"rent": Decimal("800.00"), "wifi": Decimal("40.00")}


def test_top_categories_ranked_with_percentages():
    bills = [
        _bill("75.00", "rent", "paid", paid_at=_at(2026, 5)),
        _bill("25.00", "wifi", "paid", paid_at=_at(2026, 5)),
    ]

    result = compute_bill_analytics(bills, "month", NOW)

    assert result["top_categories"] == [
        {"category": "rent", "amount": Decimal("75.00"), "percentage": 75.0},
        {"category": "wifi", "amount": Decimal("25.00"), "percentage": 25.0},
    ]


def test_top_categories_limited_to_five_and_ties_by_name():
    categories = ["wifi", "water", "rent", "phone", "gas", "electricity"]
    bills = [_bill("10.00", c, "paid", paid_at=_at(2026, 5)) for c in categories]

    result = compute_bill_analytics(bills, "month", NOW)

    assert [c["category"] for c in result["top_categories"]] == [
        "electricity", "gas", "phone", "rent", "water",
    ]


@pytest.mark.parametrize(
    "time_range, expected_total",
    [("month", "10.00"), ("quarter", "30.00"), ("year", "60.00")],
)
def test_time_ranges_are_calendar_periods(time_range, expected_total):
    bills = [
        _bill("10.00", status="paid", paid_at=_at(2026, 5)),   # this month
        _bill("20.00", status="paid", paid_at=_at(2026, 4)),   # same quarter
        _bill("30.00", status="paid", paid_at=_at(2026, 1)),   # same year
        _bill("40.00", status="paid", paid_at=_at(2025, 5)),   # last year
    ]

    result = compute_bill_analytics(bills, time_range, NOW)

    assert result["total_spent"] == Decimal(expected_total)


def test_monthly_trend_covers_six_months_of_paid_bills():
    bills = [
        _bill("10.00", status="paid", paid_at=_at(2026, 5)),
        _bill("15.00", status="paid", paid_at=_at(2025, 12)),
        _bill("99.00", status="paid", paid_at=_at(2025, 11)),  # outside window
        _bill("50.00", due=_at(2026, 3)),                       # unpaid
    ]

    trend = compute_bill_analytics(bills, "month", NOW)["monthly_trend"]

    assert [(t["year"], t["month"]) for t in trend] == [
        (2025, "Dec"), (2026, "Jan"), (2026, "Feb"), (2026, "Mar"), (2026, "Apr"), (2026, "May"),
    ]
    assert [t["amount"] for t in trend] == [
        Decimal("15.00"), Decimal("0.00"), Decimal("0.00"), Decimal("0.00"), Decimal("0.00"), Decimal("10.00"),
    ]
    assert trend[-1]["month_number"] == 5


def test_no_bills_gives_zeroes():
    result = compute_bill_analytics([], "year", NOW)

    assert result["total_spent"] == Decimal("0.00")
    assert result["average_bill"] == Decimal("0.00")
    assert result["top_categories"] == []
    assert len(result["monthly_trend"]) == 6


def test_unknown_time_range_raises():
    with pytest.raises(InvalidInput) as exc_info:
        compute_bill_analytics([], "week", NOW)

    assert exc_info.value.code == ErrorCode.INVALID_TIME_RANGE
    assert exc_info.value.field == "range"
