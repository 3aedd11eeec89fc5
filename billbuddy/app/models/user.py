"""
models/user.py — User table definition.

No business logic. No imports from services or routes.

The email column is the member identifier used everywhere in the ledger:
group member lists and expense payer/participant fields hold emails, not
user ids, so that people can be added to a group before they register.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billbuddy.app.extensions import db
from billbuddy.app.timeutil import utcnow


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
        CheckConstraint(
            "LENGTH(TRIM(display_name)) > 0",
            name="ck_users_display_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Stored lower-cased; the auth service normalises before every lookup.
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(  # noqa: F821
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    bills: Mapped[list["Bill"]] = relationship(  # noqa: F821
        "Bill",
        back_populates="owner",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r}>"
