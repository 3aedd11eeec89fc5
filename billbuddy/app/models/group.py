"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

Key design points:
  - Members are an ordered list of emails held in the memberships table;
    position 0 is always the creator.
  - total_expenses / pending_expenses are denormalised caches bumped by the
    expense service on every non-settlement expense. Balances never read
    them; they are recomputed from the expense list.
  - Deleting a group deletes its memberships and expenses (ORM cascade and
    ON DELETE CASCADE).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billbuddy.app.extensions import db
from billbuddy.app.timeutil import utcnow


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        CheckConstraint("total_expenses >= 0", name="ck_groups_total_nonnegative"),
        CheckConstraint("pending_expenses >= 0", name="ck_groups_pending_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    # Creator's email. Also the first entry of `members`.
    created_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    total_expenses: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    pending_expenses: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
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

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        order_by="Membership.position",
        cascade="all, delete-orphan",
    )

    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="group",
        order_by="Expense.id",
        cascade="all, delete-orphan",
    )

    @property
    def members(self) -> list[str]:
        """Member emails in stored order; the creator comes first."""
        return [m.member_email for m in self.memberships]

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r}>"
