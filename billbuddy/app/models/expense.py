"""
models/expense.py — Expense and ExpenseParticipant table definitions.

No business logic. No imports from services or routes.

Key design points:
  - Expenses are immutable once written. There is no edit path; they go
    away only when their group is deleted (cascade).
  - `amount` uses Numeric(12, 2), never Float.
  - `paid_by` and participant entries are member emails, not user ids.
  - `settlement` marks a recorded transfer between two members rather than
    a shared cost. It is stored in the `is_settlement` column.
  - The attribute names (paid_by, amount, split_between, settlement) are the
    ones the ledger aggregator reads, so ORM rows can be fed to
    balance_service.compute_balances() as they are.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billbuddy.app.extensions import db
from billbuddy.app.timeutil import utcnow


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    paid_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    created_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    settlement: Mapped[bool] = mapped_column(
        "is_settlement",
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    participants: Mapped[list["ExpenseParticipant"]] = relationship(
        "ExpenseParticipant",
        back_populates="expense",
        order_by="ExpenseParticipant.position",
        cascade="all, delete-orphan",
    )

    @property
    def split_between(self) -> list[str]:
        """Participant emails in the order they were recorded."""
        return [p.member_email for p in self.participants]

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount} "
            f"settlement={self.settlement}>"
        )


class ExpenseParticipant(db.Model):
    """One member sharing an expense. Owned by the expense (ON DELETE CASCADE)."""

    __tablename__ = "expense_participants"

    __table_args__ = (
        UniqueConstraint(
            "expense_id",
            "member_email",
            name="uq_expense_participants_expense_member",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    member_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    expense: Mapped[Expense] = relationship(
        Expense,
        back_populates="participants",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseParticipant expense_id={self.expense_id} "
            f"member={self.member_email!r}>"
        )
