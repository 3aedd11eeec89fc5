"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order (FK dependencies):
  users → refresh_tokens, bills
  groups → memberships, expenses → expense_participants

Enums (bill category, bill status) are stored as VARCHAR values with CHECK
constraints rather than PostgreSQL enum types, so the same revision runs on
SQLite for local tooling.

ON DELETE policies:
  refresh_tokens.user_id          → CASCADE  (token owned by user)
  bills.user_id                   → CASCADE  (bill owned by user)
  memberships.group_id            → CASCADE  (membership owned by group)
  expenses.group_id               → CASCADE  (expenses go with their group)
  expense_participants.expense_id → CASCADE
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None

_BILL_CATEGORIES = (
    "electricity", "rent", "wifi", "subscriptions",
    "water", "gas", "phone", "other",
)


def upgrade() -> None:
    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
        sa.CheckConstraint(
            "LENGTH(TRIM(display_name)) > 0",
            name="ck_users_display_name_nonempty",
        ),
    )

    # ── refresh_tokens ─────────────────────────────────────────────────────
    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])

    # ── groups ─────────────────────────────────────────────────────────────
    # created_by is the creator's email, also the first membership row.
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("total_expenses", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pending_expenses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
        sa.CheckConstraint("total_expenses >= 0", name="ck_groups_total_nonnegative"),
        sa.CheckConstraint("pending_expenses >= 0", name="ck_groups_pending_nonnegative"),
    )

    # ── memberships ────────────────────────────────────────────────────────
    # member_email is not a FK: members may be invited before registering.
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("member_email", sa.String(255), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("group_id", "member_email", name="uq_memberships_group_member"),
    )
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_memberships_member_email", "memberships", ["member_email"])

    # ── expenses ───────────────────────────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_expenses_group"),
            nullable=False,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_by", sa.String(255), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("is_settlement", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])

    # ── expense_participants ───────────────────────────────────────────────
    op.create_table(
        "expense_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_expense_participants_expense"),
            nullable=False,
        ),
        sa.Column("member_email", sa.String(255), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_expense_participants"),
        sa.UniqueConstraint(
            "expense_id",
            "member_email",
            name="uq_expense_participants_expense_member",
        ),
    )
    op.create_index("ix_expense_participants_expense_id", "expense_participants", ["expense_id"])

    # ── bills ──────────────────────────────────────────────────────────────
    # status stores pending/paid only; overdue is derived at read time.
    categories = ", ".join(f"'{c}'" for c in _BILL_CATEGORIES)
    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_bills_user"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", sa.String(13), nullable=False, server_default="other"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("due_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(7), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_bills"),
        sa.CheckConstraint("amount > 0", name="ck_bills_amount_positive"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_bills_name_nonempty"),
        sa.CheckConstraint("status IN ('pending', 'paid')", name="ck_bills_status_stored"),
        sa.CheckConstraint(f"category IN ({categories})", name="ck_bills_category"),
    )
    op.create_index("ix_bills_user_id", "bills", ["user_id"])
    op.create_index("ix_bills_due_timestamp", "bills", ["due_timestamp"])


def downgrade() -> None:
    op.drop_table("bills")
    op.drop_table("expense_participants")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
