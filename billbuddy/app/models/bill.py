"""
models/bill.py — Bill table definition and its enums.

No business logic. No imports from services or routes.

Key design points:
  - `status` stores only what the owner set: pending or paid. `overdue` is
    derived at read time by bill_service.derive_bill_status() and is never
    written to this column.
  - `due_timestamp` is `due_date` combined with the reminder time of day.
    Ordering, overdue derivation and reminders all read it.
  - Enums are stored as their string values (non-native) so the same schema
    works on PostgreSQL and SQLite.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billbuddy.app.extensions import db
from billbuddy.app.timeutil import utcnow


class BillCategory(str, enum.Enum):
    ELECTRICITY = "electricity"
    RENT = "rent"
    WIFI = "wifi"
    SUBSCRIPTIONS = "subscriptions"
    WATER = "water"
    GAS = "gas"
    PHONE = "phone"
    OTHER = "other"


class BillStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"  # derived only


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Bill(db.Model):
    __tablename__ = "bills"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_bills_amount_positive"),
        CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_bills_name_nonempty"),
        CheckConstraint("status IN ('pending', 'paid')", name="ck_bills_status_stored"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    category: Mapped[BillCategory] = mapped_column(
        Enum(
            BillCategory,
            name="bill_category",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=BillCategory.OTHER,
    )

    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    due_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_recurring: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
    )

    reminder_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="1",
    )

    status: Mapped[BillStatus] = mapped_column(
        Enum(
            BillStatus,
            name="bill_status",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=BillStatus.PENDING,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="bills",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Bill id={self.id} "
            f"user_id={self.user_id} "
            f"name={self.name!r} "
            f"status={self.status}>"
        )
