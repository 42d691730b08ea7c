"""
models/membership.py
--------------------
School membership: links a user to a school with exactly one role.

Invariants held by the schema:
  - (school_id, user_id) is unique: one role per user per school.
  - founding_school_id is set only on the membership created by the
    first-admin bootstrap and is unique, so two concurrent bootstrap claims
    for the same school cannot both commit.
"""

from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class MemberRole(str, PyEnum):
    admin = "admin"
    member = "member"


class Membership(Base, TimestampMixin):
    __tablename__ = "school_members"
    __table_args__ = (
        UniqueConstraint("school_id", "user_id", name="uq_school_members_school_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    school_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=MemberRole.member.value)
    founding_school_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=True,
        unique=True,
    )

    # Relationships
    school: Mapped["School"] = relationship(  # noqa: F821
        "School", back_populates="memberships", foreign_keys=[school_id]
    )
    user: Mapped["User"] = relationship("User", back_populates="memberships")  # noqa: F821

    @property
    def member_role(self) -> MemberRole:
        return MemberRole(self.role)

    def __repr__(self) -> str:
        return f"<Membership school_id={self.school_id} user_id={self.user_id} role={self.role}>"
