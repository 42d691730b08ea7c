"""
models/school.py
----------------
School (tenant) ORM model.

A school is the root tenant entity. Every other school-scoped row carries a
school_id with ON DELETE CASCADE, so removing a school removes its
memberships, invitations, tone profiles and drafts.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class School(Base, TimestampMixin):
    __tablename__ = "schools"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    website: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    # Relationships
    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="school",
        cascade="all, delete-orphan",
        foreign_keys="Membership.school_id",
    )
    invitations: Mapped[list["Invitation"]] = relationship(  # noqa: F821
        "Invitation", back_populates="school", cascade="all, delete-orphan"
    )
    tone_profiles: Mapped[list["ToneProfile"]] = relationship(  # noqa: F821
        "ToneProfile", back_populates="school", cascade="all, delete-orphan"
    )
    drafts: Mapped[list["ContentDraft"]] = relationship(  # noqa: F821
        "ContentDraft", back_populates="school", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<School id={self.id} name={self.name}>"
