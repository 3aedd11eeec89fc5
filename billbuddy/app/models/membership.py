"""
models/membership.py — Group membership definition.

One row per (group, member email). `position` keeps the member list ordered
so the creator stays first and balance output follows a stable order.

FK policy: group_id ON DELETE CASCADE — memberships are owned by the group.
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billbuddy.app.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships"

    __table_args__ = (
        UniqueConstraint("group_id", "member_email", name="uq_memberships_group_member"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Not a FK to users: a member may be invited before registering.
    member_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Membership group_id={self.group_id} "
            f"member={self.member_email!r} "
            f"position={self.position}>"
        )
